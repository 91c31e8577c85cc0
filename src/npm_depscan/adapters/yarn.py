"""Adapter for ``yarn list --json`` (yarn classic).

Yarn prints one JSON object per line; progress and info lines are mixed in
with the single ``{"type": "tree"}`` line that carries the dependency tree.
"""

from __future__ import annotations

import json
from typing import IO, Any

from ..models import Dependency, mark_transitive
from ..parsers.versions import split_specifier
from .base import LockfileProbe


class YarnAdapter(LockfileProbe):
    name = "yarn"
    lockfile = "yarn.lock"

    def command(self) -> list[str]:
        return ["yarn", "list", "--json"]

    def parse(self, stream: IO[str]) -> list[Dependency]:
        seen: set[str] = set()
        tree: list[Dependency] = []
        for line in stream:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict) or message.get("type") != "tree":
                continue
            data = message.get("data")
            if isinstance(data, dict):
                tree.extend(self._nodes(data.get("trees"), seen))
        return mark_transitive(tree)

    def _nodes(self, trees: Any, seen: set[str]) -> list[Dependency]:
        if not isinstance(trees, list):
            return []

        nodes: list[Dependency] = []
        for node in trees:
            if not isinstance(node, dict) or not isinstance(node.get("name"), str):
                continue
            name, version = split_specifier(node["name"])
            if not name or not version:
                continue
            dep = Dependency(
                name=name,
                version=version,
                version_constraint=version,
                resolved_version=version,
            )
            if dep.key not in seen:
                seen.add(dep.key)
                children = self._nodes(node.get("children"), seen)
                if children:
                    dep.children = children
            nodes.append(dep)
        return nodes
