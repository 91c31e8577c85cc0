"""Scanner strategy interface and the unit of work it resolves."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..discovery import LockfileRef
from ..models import DependencyFile


@dataclass(slots=True, frozen=True)
class ScanTarget:
    """One manifest to resolve, with the workspace it was discovered in."""

    manifest: Path
    workspace_root: Path
    root_lock: LockfileRef | None = None

    @property
    def directory(self) -> Path:
        return self.manifest.parent


@runtime_checkable
class ScannerStrategy(Protocol):
    """Resolves the dependency tree of a single manifest."""

    name: str

    def resolve(
        self, target: ScanTarget, cancel: threading.Event | None = None
    ) -> DependencyFile: ...
