"""Resolve dependency trees from lockfiles without running any tool."""

from __future__ import annotations

import threading

import structlog

from ..discovery import LOCKFILE_NAMES, LockfileKind, LockfileRef, find_lockfile
from ..errors import ScanCancelledError, ScanError, raise_if_cancelled
from ..models import Dependency, DependencyFile
from ..parsers import package_json, package_lock, pnpm_lock, yarn_lock
from ..parsers.package_json import PackageManifest
from .base import ScanTarget

log = structlog.get_logger("npm_depscan.static")

ROOT_IMPORTER = "."


def shared_pnpm_lock(target: ScanTarget) -> tuple[LockfileRef, str] | None:
    """Return the workspace pnpm-lock.yaml and the member's importer id.

    pnpm writes one lockfile for the whole workspace, keyed by each member's
    path relative to the workspace root.
    """
    lock = target.root_lock
    if lock is None or lock.kind is not LockfileKind.PNPM:
        return None
    if lock.path.name != LOCKFILE_NAMES[LockfileKind.PNPM]:
        return None
    try:
        importer = target.directory.relative_to(lock.path.parent).as_posix()
    except ValueError:
        return None
    if importer == ROOT_IMPORTER:
        return None
    return lock, importer


class StaticStrategy:
    """Parses the lockfile next to each manifest.

    A pnpm workspace member without its own lockfile reads its importer from
    the workspace root lockfile. Without a lockfile, or when it cannot be
    parsed, only the declared ranges of the manifest are reported.
    """

    name = "static"

    def resolve(self, target: ScanTarget, cancel: threading.Event | None = None) -> DependencyFile:
        raise_if_cancelled(cancel)
        manifest = PackageManifest.load(target.manifest)

        tree = self._lockfile_tree(target, manifest, cancel)
        if tree is None:
            log.debug("static.manifest_only", manifest=str(target.manifest))
            return package_json.parse(
                target.manifest,
                workspace_folder=str(target.workspace_root),
                manifest=manifest,
            )

        return DependencyFile.from_tree(
            path=str(target.manifest),
            tree=tree,
            package_name=manifest.name,
            package_root=str(target.directory),
            workspace_folder=str(target.workspace_root),
        )

    def _lockfile_tree(
        self,
        target: ScanTarget,
        manifest: PackageManifest,
        cancel: threading.Event | None,
    ) -> list[Dependency] | None:
        importer = ROOT_IMPORTER
        lockfile = find_lockfile(target.directory)
        if lockfile is None:
            shared = shared_pnpm_lock(target)
            if shared is None:
                return None
            lockfile, importer = shared

        try:
            tree = self._parse_lockfile(lockfile, manifest, importer, cancel)
        except ScanCancelledError:
            raise
        except ScanError as exc:
            log.warning("static.lockfile_failed", lockfile=str(lockfile.path), error=str(exc))
            return None

        if not tree and importer != ROOT_IMPORTER and manifest.declares_dependencies:
            log.warning("static.importer_empty", lockfile=str(lockfile.path), importer=importer)
            return None

        log.info(
            "static.lockfile_parsed",
            lockfile=str(lockfile.path),
            importer=importer,
            dependencies=len(tree),
        )
        return tree

    def _parse_lockfile(
        self,
        lockfile: LockfileRef,
        manifest: PackageManifest,
        importer: str,
        cancel: threading.Event | None,
    ) -> list[Dependency]:
        if lockfile.kind is LockfileKind.PNPM:
            tree = pnpm_lock.parse_file(lockfile.path, importer=importer, cancel=cancel)
        elif lockfile.kind is LockfileKind.YARN:
            tree = yarn_lock.parse_file(lockfile.path, manifest=manifest, cancel=cancel)
        else:
            tree = package_lock.parse_file(lockfile.path, manifest=manifest, cancel=cancel)
        return manifest.mark_dev(tree)
