"""Resolve installed dependency trees through the package manager CLI."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from pathlib import Path

import structlog

from ..adapters import CliAdapter, default_adapters, select_adapter
from ..errors import (
    MissingInstalledDependenciesError,
    ParseError,
    ProcessFailureError,
    raise_if_cancelled,
)
from ..executor import DEFAULT_TIMEOUT, CommandOutput, stream_command
from ..models import Dependency, DependencyFile
from ..parsers.package_json import PackageManifest
from .base import ScanTarget

log = structlog.get_logger("npm_depscan.native")

CommandRunner = Callable[
    [Sequence[str], Path, float, threading.Event | None],
    AbstractContextManager[CommandOutput],
]


class NativeStrategy:
    """Runs ``npm ls`` / ``pnpm list`` / ``yarn list`` for each target.

    The CLI only reports what is actually installed, so this strategy gives
    the most faithful tree but needs node_modules and a working toolchain.
    """

    name = "native"

    def __init__(
        self,
        adapters: Sequence[CliAdapter] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        runner: CommandRunner = stream_command,
    ) -> None:
        self.adapters = list(adapters) if adapters is not None else default_adapters()
        self.timeout = timeout
        self._runner = runner

    def resolve(self, target: ScanTarget, cancel: threading.Event | None = None) -> DependencyFile:
        raise_if_cancelled(cancel)
        manifest = PackageManifest.load(target.manifest)
        directory = target.directory
        adapter = select_adapter(directory, target.root_lock, self.adapters)
        argv = adapter.command()
        log.info("native.adapter_selected", adapter=adapter.name, directory=str(directory))

        with self._runner(argv, directory, self.timeout, cancel) as output:
            tree = self._read(adapter, output, target)

        if not tree and manifest.declares_dependencies:
            log.warning("native.empty_output", manifest=str(target.manifest))
            raise MissingInstalledDependenciesError(
                "Native scan returned 0 dependencies but package.json has dependencies; "
                "node_modules is missing or incomplete",
                context={"manifest": str(target.manifest), "adapter": adapter.name},
            )

        manifest.mark_dev(tree)
        log.info(
            "native.resolved",
            adapter=adapter.name,
            manifest=str(target.manifest),
            dependencies=len(tree),
        )
        return DependencyFile.from_tree(
            path=str(target.manifest),
            tree=tree,
            package_name=manifest.name,
            package_root=str(directory),
            workspace_folder=str(target.workspace_root),
        )

    def _read(self, adapter: CliAdapter, output: CommandOutput, target: ScanTarget) -> list[Dependency]:
        if output.ok:
            with output.stdout_path.open(encoding="utf-8", errors="replace") as stream:
                return adapter.parse(stream)

        # npm exits non-zero on peer conflicts yet still prints a complete tree
        message = f"{' '.join(output.argv)} exited with code {output.returncode}"
        try:
            with output.stdout_path.open(encoding="utf-8", errors="replace") as stream:
                tree = adapter.parse(stream)
        except ParseError as exc:
            log.warning("native.failed_output_unparseable", manifest=str(target.manifest), error=str(exc))
            tree = []

        if tree and not any(dep.has_unresolved_version() for dep in tree):
            log.warning(
                "native.failed_output_accepted",
                manifest=str(target.manifest),
                returncode=output.returncode,
                dependencies=len(tree),
            )
            return tree

        if tree:
            log.warning("native.unresolved_versions", manifest=str(target.manifest))
        raise ProcessFailureError.from_output(
            message,
            stderr=output.stderr,
            returncode=output.returncode,
            context={"manifest": str(target.manifest), "adapter": adapter.name},
        )
