"""npm-depscan core package.

Resolves the dependency trees of a Node.js workspace, through the package
manager CLI when it works and from lockfiles when it does not.
"""

from .config import ScanSettings, ScanStrategy, load_settings
from .core import StrategySelector, scan_workspace
from .errors import FailureKind, ScanError
from .models import Dependency, DependencyFile, ProjectInfo

__all__ = [
    "Dependency",
    "DependencyFile",
    "FailureKind",
    "ProjectInfo",
    "ScanError",
    "ScanSettings",
    "ScanStrategy",
    "StrategySelector",
    "load_settings",
    "scan_workspace",
]
