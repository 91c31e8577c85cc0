"""Dependency tree node model."""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Iterator

UNRESOLVED_VERSION = "0.0.0"


@dataclass(slots=True)
class Dependency:
    """A single node of a manifest's dependency tree.

    Root nodes are direct dependencies of one manifest; every node reachable
    through ``children`` is transitive. ``children`` is ``None`` for leaves,
    including repeat occurrences of a ``name@version`` already expanded
    elsewhere in the same tree.
    """

    name: str
    version: str
    version_constraint: str
    resolved_version: str | None = None
    is_dev: bool = False
    is_transitive: bool = False
    is_internal: bool = False
    package_root: str | None = None
    workspace_folder: str | None = None
    children: list[Dependency] | None = None

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"

    def walk(self) -> Iterator[Dependency]:
        """Yield this node and every descendant, pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))

    def has_unresolved_version(self) -> bool:
        return any(node.version == UNRESOLVED_VERSION for node in self.walk())

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "name": self.name,
            "version": self.version,
            "versionConstraint": self.version_constraint,
            "isDev": self.is_dev,
            "isTransitive": self.is_transitive,
            "isInternal": self.is_internal,
        }
        if self.resolved_version is not None:
            data["resolvedVersion"] = self.resolved_version
        if self.package_root is not None:
            data["packageRoot"] = self.package_root
        if self.workspace_folder is not None:
            data["workspaceFolder"] = self.workspace_folder
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def mark_transitive(deps: list[Dependency]) -> list[Dependency]:
    """Flag every node below the given roots as transitive, in place."""
    for dep in deps:
        for child in dep.children or []:
            for node in child.walk():
                node.is_transitive = True
    return deps
