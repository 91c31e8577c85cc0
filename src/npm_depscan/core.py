"""Core scanning entrypoints.

``scan_workspace`` discovers every manifest under a workspace root, resolves
each one with the configured strategy and merges the results into a single
``ProjectInfo``. Nothing here talks to a UI; notices about degraded scans go
through the ``notify`` callback.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import structlog

from .annotate import MonorepoContext, collect_package_names
from .config import ScanSettings, ScanStrategy
from .discovery import detect_root_lockfile, discover_manifests, is_monorepo
from .errors import (
    NOTICES,
    FailureKind,
    FileMissingError,
    ScanCancelledError,
    classify_failure,
    raise_if_cancelled,
    wrap_error,
)
from .models import DependencyFile, ProjectInfo
from .strategies import NativeStrategy, ScannerStrategy, ScanTarget, StaticStrategy

log = structlog.get_logger("npm_depscan.core")

Notify = Callable[[FailureKind, str], None]

__all__ = ["Notify", "ScanStrategy", "StrategySelector", "scan_workspace"]


def log_notice(kind: FailureKind, message: str) -> None:
    log.warning("scan.fallback_notice", kind=kind.value, message=message)


class StrategySelector:
    """Chooses between native and static resolution for each target.

    Forced native runs only the CLI and lets its errors through. A static parse
    that fails, forced or as a fallback, is logged and the target skipped. In
    ``auto`` mode a recoverable native failure is classified, reported once
    per kind and answered with a static parse of the same target.
    """

    def __init__(
        self,
        strategy: ScanStrategy = ScanStrategy.AUTO,
        native: ScannerStrategy | None = None,
        static: ScannerStrategy | None = None,
        notify: Notify | None = None,
    ) -> None:
        self.strategy = strategy
        self.native = native if native is not None else NativeStrategy()
        self.static = static if static is not None else StaticStrategy()
        self._notify = notify or log_notice
        self._notified: set[FailureKind] = set()
        self._lock = threading.Lock()

    def resolve(self, target: ScanTarget, cancel: threading.Event | None = None) -> DependencyFile | None:
        """Return the target's dependencies, or None when its static parse failed."""
        if self.strategy is ScanStrategy.NATIVE:
            return self.native.resolve(target, cancel)
        if self.strategy is ScanStrategy.STATIC:
            return self._static_or_skip(target, cancel)

        try:
            return self.native.resolve(target, cancel)
        except ScanCancelledError:
            raise
        except Exception as exc:
            error = wrap_error(exc, f"Native scan failed for {target.manifest}")
            if not error.recoverable:
                raise error
            log.info(
                "scan.native_failed",
                manifest=str(target.manifest),
                error=str(error),
                error_type=type(error).__name__,
            )
            self._report(classify_failure(error))

        return self._static_or_skip(target, cancel)

    def _static_or_skip(self, target: ScanTarget, cancel: threading.Event | None) -> DependencyFile | None:
        try:
            return self.static.resolve(target, cancel)
        except ScanCancelledError:
            raise
        except Exception as exc:
            error = wrap_error(exc, f"Static scan failed for {target.manifest}")
            log.warning("scan.manifest_skipped", manifest=str(target.manifest), error=str(error))
            return None

    def _report(self, kind: FailureKind) -> None:
        with self._lock:
            if kind in self._notified:
                return
            self._notified.add(kind)
        self._notify(kind, NOTICES[kind])


def scan_workspace(
    root: Path | str,
    settings: ScanSettings | None = None,
    *,
    native: ScannerStrategy | None = None,
    static: ScannerStrategy | None = None,
    notify: Notify | None = None,
    cancel: threading.Event | None = None,
) -> ProjectInfo:
    """Scan a Node.js workspace and return its dependency trees.

    Params:
        root: workspace root; every non-ignored package.json below it is a target
        settings: strategy, command timeout and worker count (defaults if None)
        native / static: strategy instances to use instead of the defaults
        notify: receives ``(kind, message)`` once per fallback cause
        cancel: event checked between targets and inside commands and parsers

    Raises:
        ScanCancelledError: when ``cancel`` is set during the scan
        ScanError: in forced native mode, the first target failure
    """
    settings = settings or ScanSettings()
    root = Path(root).resolve()
    if not root.is_dir():
        raise FileMissingError(f"Workspace root not found: {root}")

    raise_if_cancelled(cancel)
    manifests = discover_manifests(root)
    if not manifests:
        log.warning("scan.no_manifests", root=str(root))
        return ProjectInfo.empty()

    context = MonorepoContext(
        workspace_root=root,
        is_monorepo=is_monorepo(manifests),
        internal_names=collect_package_names(manifests),
    )
    root_lock = detect_root_lockfile(root)
    targets = [ScanTarget(manifest=path, workspace_root=root, root_lock=root_lock) for path in manifests]
    selector = StrategySelector(
        settings.strategy,
        native=native if native is not None else NativeStrategy(timeout=settings.command_timeout),
        static=static,
        notify=notify,
    )
    log.info(
        "scan.started",
        root=str(root),
        manifests=len(targets),
        monorepo=context.is_monorepo,
        strategy=settings.strategy.value,
    )

    def run(target: ScanTarget) -> ProjectInfo:
        raise_if_cancelled(cancel)
        dep_file = selector.resolve(target, cancel)
        if dep_file is None:
            return ProjectInfo.empty()
        context.annotate_file(dep_file, target.directory)
        return ProjectInfo.from_files([dep_file])

    if settings.max_workers > 1 and len(targets) > 1:
        with ThreadPoolExecutor(
            max_workers=settings.max_workers, thread_name_prefix="npm-depscan"
        ) as pool:
            results = list(pool.map(run, targets))
    else:
        results = [run(target) for target in targets]

    info = ProjectInfo.merge(results)
    log.info(
        "scan.completed",
        root=str(root),
        files=len(info.dependency_files),
        dependencies=len(info.dependencies),
    )
    return info
