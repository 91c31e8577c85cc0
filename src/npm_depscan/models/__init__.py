"""Data models for workspace dependency scans."""

from __future__ import annotations

from .dependency import UNRESOLVED_VERSION, Dependency, mark_transitive
from .dependency_file import NPM_ECOSYSTEM, DependencyFile
from .project_info import ProjectInfo

__all__ = [
    "NPM_ECOSYSTEM",
    "UNRESOLVED_VERSION",
    "Dependency",
    "DependencyFile",
    "ProjectInfo",
    "mark_transitive",
]
