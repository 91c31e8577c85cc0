"""Parse package.json manifests.

A manifest on its own only tells us the declared ranges; this is what the
static strategy falls back to when a directory has no usable lockfile.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import FileMissingError, ParseError
from ..models import Dependency, DependencyFile
from .versions import clean_version, is_exact_version


def _section(data: dict[str, Any], key: str) -> dict[str, str]:
    deps = data.get(key)
    if not isinstance(deps, dict):
        return {}
    return {str(name): version for name, version in deps.items() if isinstance(version, str)}


@dataclass(slots=True, frozen=True)
class PackageManifest:
    """The dependency-relevant parts of one package.json."""

    path: Path
    name: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def declares_dependencies(self) -> bool:
        return bool(self.dependencies or self.dev_dependencies)

    def declared(self) -> list[tuple[str, str, bool]]:
        """Return ``(name, range, is_dev)`` for every direct dependency.

        A name listed both as a production and a dev dependency counts as
        production.
        """
        entries: list[tuple[str, str, bool]] = []
        prod = {**self.optional_dependencies, **self.dependencies}
        for name, expr in prod.items():
            entries.append((name, expr, False))
        for name, expr in self.dev_dependencies.items():
            if name not in prod:
                entries.append((name, expr, True))
        return entries

    def is_dev_only(self, name: str) -> bool:
        return (
            name in self.dev_dependencies
            and name not in self.dependencies
            and name not in self.optional_dependencies
        )

    def mark_dev(self, tree: list[Dependency]) -> list[Dependency]:
        """Flag roots declared only under devDependencies, with their subtrees."""
        for root in tree:
            if root.is_dev or not self.is_dev_only(root.name):
                continue
            for node in root.walk():
                node.is_dev = True
        return tree

    @classmethod
    def from_text(cls, content: str, path: Path) -> PackageManifest:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError(f"Invalid JSON in {path}: expected an object")

        name = data.get("name")
        return cls(
            path=path,
            name=name if isinstance(name, str) and name.strip() else None,
            dependencies=_section(data, "dependencies"),
            dev_dependencies=_section(data, "devDependencies"),
            optional_dependencies=_section(data, "optionalDependencies"),
        )

    @classmethod
    def load(cls, path: Path) -> PackageManifest:
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise FileMissingError(f"File not found: {path}") from exc
        except OSError as exc:
            raise FileMissingError(f"Cannot read {path}: {exc}") from exc
        return cls.from_text(content, path)


def declared_dependency(name: str, expr: str, is_dev: bool) -> Dependency:
    """Build a root node from a declared range only."""
    return Dependency(
        name=name,
        version=clean_version(expr),
        version_constraint=expr,
        resolved_version=expr if is_exact_version(expr) else None,
        is_dev=is_dev,
    )


def parse(
    path: Path,
    workspace_folder: str | None = None,
    manifest: PackageManifest | None = None,
) -> DependencyFile:
    """Return the manifest's direct dependencies with their declared ranges.

    Sections: dependencies, optionalDependencies (production) and
    devDependencies. peerDependencies are not installed by the manifest itself
    and are skipped. An already loaded ``manifest`` for ``path`` is reused.
    """
    if manifest is None:
        manifest = PackageManifest.load(path)
    tree = [declared_dependency(name, expr, is_dev) for name, expr, is_dev in manifest.declared()]
    return DependencyFile.from_tree(
        path=str(path),
        tree=tree,
        package_name=manifest.name,
        package_root=str(manifest.directory),
        workspace_folder=workspace_folder,
    )
