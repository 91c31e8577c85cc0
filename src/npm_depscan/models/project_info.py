"""Workspace-level scan result."""

from __future__ import annotations

from dataclasses import dataclass, field
from collections.abc import Iterable

from .dependency import Dependency
from .dependency_file import DependencyFile


@dataclass(slots=True)
class ProjectInfo:
    """Everything one scan call found, handed straight to analyzers."""

    ecosystem_types: set[str] = field(default_factory=set)
    dependency_files: list[DependencyFile] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "ecosystemTypes": sorted(self.ecosystem_types),
            "dependencyFiles": [item.to_dict() for item in self.dependency_files],
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }

    @classmethod
    def empty(cls) -> ProjectInfo:
        return cls()

    @classmethod
    def from_files(cls, files: Iterable[DependencyFile]) -> ProjectInfo:
        info = cls()
        for dep_file in files:
            info.ecosystem_types.add(dep_file.ecosystem)
            info.dependency_files.append(dep_file)
            info.dependencies.extend(dep_file.all_dependencies())
        return info

    @classmethod
    def merge(cls, results: Iterable[ProjectInfo]) -> ProjectInfo:
        """Union ecosystem types and concatenate files and dependencies."""
        merged = cls()
        for result in results:
            merged.ecosystem_types.update(result.ecosystem_types)
            merged.dependency_files.extend(result.dependency_files)
            merged.dependencies.extend(result.dependencies)
        return merged
