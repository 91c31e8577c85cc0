"""Package manager CLI adapters used by the native strategy."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from ..discovery import LockfileKind, LockfileRef
from .base import CliAdapter
from .npm import NpmAdapter
from .pnpm import PnpmAdapter, PnpmListShape
from .yarn import YarnAdapter

__all__ = [
    "CliAdapter",
    "NpmAdapter",
    "PnpmAdapter",
    "PnpmListShape",
    "YarnAdapter",
    "default_adapters",
    "select_adapter",
]


def default_adapters() -> list[CliAdapter]:
    """Adapters in probing order; pnpm first as it is common in monorepos."""
    return [PnpmAdapter(), YarnAdapter(), NpmAdapter()]


def select_adapter(
    directory: Path,
    root_lock: LockfileRef | None = None,
    adapters: Sequence[CliAdapter] | None = None,
) -> CliAdapter:
    """Pick the adapter for ``directory``.

    A lockfile in the directory itself wins; workspace members without one use
    the package manager of the workspace root; npm is the last resort.
    """
    candidates = list(adapters) if adapters is not None else default_adapters()
    for adapter in candidates:
        if adapter.is_supported(directory):
            return adapter

    wanted = root_lock.kind.value if root_lock is not None else LockfileKind.NPM.value
    for adapter in candidates:
        if adapter.name == wanted:
            return adapter
    for adapter in candidates:
        if adapter.name == LockfileKind.NPM.value:
            return adapter
    return NpmAdapter()
