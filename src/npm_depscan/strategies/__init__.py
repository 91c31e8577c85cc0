"""Native (CLI) and static (lockfile) resolution strategies."""

from .base import ScannerStrategy, ScanTarget
from .native import NativeStrategy
from .static import StaticStrategy

__all__ = ["NativeStrategy", "ScanTarget", "ScannerStrategy", "StaticStrategy"]
