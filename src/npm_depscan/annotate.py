"""Monorepo context: stamp workspace location and internal flags onto trees."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from collections.abc import Iterable

import structlog

from .errors import ScanError
from .models import Dependency, DependencyFile
from .parsers.package_json import PackageManifest

log = structlog.get_logger("npm_depscan.annotate")

INTERNAL_RANGE_PREFIXES = ("workspace:", "link:", "file:")


def collect_package_names(manifests: Iterable[Path]) -> frozenset[str]:
    """Return every package name declared by a manifest in the workspace."""
    names: set[str] = set()
    for path in manifests:
        try:
            manifest = PackageManifest.load(path)
        except ScanError as exc:
            log.warning("annotate.package_name_unreadable", path=str(path), error=str(exc))
            continue
        if manifest.name:
            names.add(manifest.name)
    return frozenset(names)


@dataclass(slots=True, frozen=True)
class MonorepoContext:
    workspace_root: Path
    is_monorepo: bool
    internal_names: frozenset[str] = field(default_factory=frozenset)

    def is_internal(self, dep: Dependency) -> bool:
        constraint = dep.version_constraint or dep.version or ""
        return dep.name in self.internal_names or constraint.startswith(INTERNAL_RANGE_PREFIXES)

    def annotate(self, deps: list[Dependency], package_root: Path) -> list[Dependency]:
        """Stamp every node of ``deps`` in place and return the list.

        ``package_root`` and ``workspace_folder`` are only set for monorepos.
        """
        root = str(package_root)
        folder = str(self.workspace_root)
        for dep in deps:
            for node in dep.walk():
                node.is_internal = node.is_internal or self.is_internal(node)
                if not node.version and node.version_constraint:
                    node.version = node.version_constraint
                if self.is_monorepo:
                    node.package_root = root
                    node.workspace_folder = folder
        return deps

    def annotate_file(self, dep_file: DependencyFile, package_root: Path) -> DependencyFile:
        self.annotate(dep_file.dependencies, package_root)
        self.annotate(dep_file.dev_dependencies, package_root)
        return dep_file
