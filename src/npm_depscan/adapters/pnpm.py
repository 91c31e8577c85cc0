"""Adapter for ``pnpm list --json --depth Infinity``."""

from __future__ import annotations

import enum
import json
from typing import IO, Any

import structlog

from ..errors import ParseError
from ..models import Dependency, mark_transitive
from .base import LockfileProbe

log = structlog.get_logger("npm_depscan.adapters")


class PnpmListShape(enum.Enum):
    """pnpm prints a list of projects for workspaces, one object otherwise."""

    PROJECTS = "projects"
    SINGLE = "single"


def detect_shape(data: Any) -> PnpmListShape:
    if isinstance(data, list):
        return PnpmListShape.PROJECTS
    if isinstance(data, dict):
        return PnpmListShape.SINGLE
    raise ParseError("Failed to parse pnpm list output: expected a list or an object")


class PnpmAdapter(LockfileProbe):
    name = "pnpm"
    lockfile = "pnpm-lock.yaml"

    def command(self) -> list[str]:
        return ["pnpm", "list", "--json", "--depth", "Infinity"]

    def parse(self, stream: IO[str]) -> list[Dependency]:
        try:
            data = json.load(stream)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Failed to parse pnpm list output: {exc}") from exc

        shape = detect_shape(data)
        projects = data if shape is PnpmListShape.PROJECTS else [data]
        if not projects:
            log.warning("pnpm.no_projects")
            return []

        seen: set[str] = set()
        tree: list[Dependency] = []
        for project in projects:
            if not isinstance(project, dict):
                log.warning("pnpm.invalid_project_entry", entry_type=type(project).__name__)
                continue
            tree.extend(self._nodes(project.get("dependencies"), False, seen))
            tree.extend(self._nodes(project.get("devDependencies"), True, seen))
        log.debug("pnpm.parsed", shape=shape.value, projects=len(projects), roots=len(tree))
        return mark_transitive(tree)

    def _nodes(self, deps: Any, is_dev: bool, seen: set[str]) -> list[Dependency]:
        if not isinstance(deps, dict):
            return []

        nodes: list[Dependency] = []
        for name, info in deps.items():
            if not isinstance(info, dict) or not isinstance(info.get("version"), str):
                log.debug("pnpm.entry_skipped", name=name)
                continue
            dep = Dependency(
                name=name,
                version=info["version"],
                version_constraint=info.get("from") or "*",
                resolved_version=info["version"],
                is_dev=is_dev,
            )
            if dep.key not in seen:
                seen.add(dep.key)
                children = self._nodes(info.get("dependencies"), is_dev, seen)
                if children:
                    dep.children = children
            nodes.append(dep)
        return nodes
