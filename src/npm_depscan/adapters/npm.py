"""Adapter for ``npm ls --all --json``."""

from __future__ import annotations

import json
from typing import IO, Any

from ..errors import ParseError
from ..models import UNRESOLVED_VERSION, Dependency, mark_transitive
from .base import LockfileProbe


class NpmAdapter(LockfileProbe):
    name = "npm"
    lockfile = "package-lock.json"

    def command(self) -> list[str]:
        return ["npm", "ls", "--all", "--json"]

    def parse(self, stream: IO[str]) -> list[Dependency]:
        try:
            data = json.load(stream)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Failed to parse npm ls output: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError("Failed to parse npm ls output: expected an object")

        seen: set[str] = set()
        return mark_transitive(self._nodes(data.get("dependencies"), seen))

    def _nodes(self, deps: Any, seen: set[str]) -> list[Dependency]:
        if not isinstance(deps, dict):
            return []

        nodes: list[Dependency] = []
        for name, info in deps.items():
            if not isinstance(info, dict):
                continue
            # missing packages are listed without a version
            version = info.get("version") or UNRESOLVED_VERSION
            dep = Dependency(
                name=name,
                version=version,
                version_constraint=info.get("required") or info.get("version") or "*",
                resolved_version=info.get("version"),
            )
            if dep.key not in seen:
                seen.add(dep.key)
                children = self._nodes(info.get("dependencies"), seen)
                if children:
                    dep.children = children
            nodes.append(dep)
        return nodes
