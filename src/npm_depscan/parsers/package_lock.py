"""Parse npm package-lock.json into a resolved dependency tree.

Supports npm v2/v3 (flat ``packages`` map keyed by install path) and npm v1
(nested ``dependencies`` tree).
"""

from __future__ import annotations

import enum
import json
import threading
from pathlib import Path
from typing import Any

from ..errors import FileMissingError, ParseError, raise_if_cancelled
from ..models import Dependency, mark_transitive
from .package_json import PackageManifest
from .versions import clean_version

_NODE_MODULES = "node_modules/"


class NpmLockSchema(enum.Enum):
    PACKAGES = "packages"  # lockfileVersion 2 and 3
    LEGACY = "legacy"  # lockfileVersion 1
    EMPTY = "empty"


def detect_schema(data: dict[str, Any]) -> NpmLockSchema:
    if isinstance(data.get("packages"), dict):
        return NpmLockSchema.PACKAGES
    if isinstance(data.get("dependencies"), dict):
        return NpmLockSchema.LEGACY
    return NpmLockSchema.EMPTY


def _mapping(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def _root_entries(
    prod: dict[str, str], dev: dict[str, str], optional: dict[str, str]
) -> list[tuple[str, str, bool]]:
    merged = {**optional, **prod}
    entries = [(name, expr, False) for name, expr in merged.items()]
    entries.extend((name, expr, True) for name, expr in dev.items() if name not in merged)
    return entries


class _PackagesWalker:
    """Tree builder over the v2/v3 ``packages`` map."""

    def __init__(self, packages: dict[str, Any], cancel: threading.Event | None) -> None:
        self._packages = packages
        self._cancel = cancel
        self._seen: set[str] = set()

    def roots(self, manifest: PackageManifest | None) -> list[tuple[str, str, bool]]:
        root = self._packages.get("")
        if isinstance(root, dict):
            entries = _root_entries(
                _mapping(root.get("dependencies")),
                _mapping(root.get("devDependencies")),
                _mapping(root.get("optionalDependencies")),
            )
            if entries:
                return entries
        if manifest is not None and manifest.declares_dependencies:
            return manifest.declared()
        return self._inferred_roots()

    def _inferred_roots(self) -> list[tuple[str, str, bool]]:
        required: set[str] = set()
        for meta in self._packages.values():
            if isinstance(meta, dict):
                required.update(_mapping(meta.get("dependencies")))
                required.update(_mapping(meta.get("optionalDependencies")))

        entries: list[tuple[str, str, bool]] = []
        for path, meta in self._packages.items():
            if not path.startswith(_NODE_MODULES) or not isinstance(meta, dict):
                continue
            name = path[len(_NODE_MODULES) :]
            if "/node_modules/" in name or name in required:
                continue
            entries.append((name, str(meta.get("version", "")), bool(meta.get("dev"))))
        return entries

    def resolve(self, base: str, name: str) -> tuple[str, dict[str, Any]] | None:
        """Find the install path node would load ``name`` from, starting at ``base``."""
        while True:
            candidate = f"{base}/node_modules/{name}" if base else f"node_modules/{name}"
            meta = self._packages.get(candidate)
            if isinstance(meta, dict):
                if meta.get("link") and isinstance(meta.get("resolved"), str):
                    target = meta["resolved"]
                    linked = self._packages.get(target)
                    return target, linked if isinstance(linked, dict) else {}
                return candidate, meta
            if not base:
                return None
            idx = base.rfind("/node_modules/")
            base = base[:idx] if idx != -1 else ""

    def build(
        self, name: str, expr: str, is_dev: bool, base: str, optional: bool = False
    ) -> Dependency | None:
        raise_if_cancelled(self._cancel)
        found = self.resolve(base, name)
        if found is None:
            if optional:
                return None
            return Dependency(
                name=name,
                version=clean_version(expr),
                version_constraint=expr,
                is_dev=is_dev,
            )

        path, meta = found
        version = str(meta.get("version") or clean_version(expr))
        dep = Dependency(
            name=name,
            version=version,
            version_constraint=expr or version,
            resolved_version=meta.get("version"),
            is_dev=is_dev or bool(meta.get("dev")),
        )

        if dep.key in self._seen:
            return dep
        self._seen.add(dep.key)

        children: list[Dependency] = []
        for child_name, child_expr in _mapping(meta.get("dependencies")).items():
            child = self.build(child_name, child_expr, False, path)
            if child is not None:
                children.append(child)
        for child_name, child_expr in _mapping(meta.get("optionalDependencies")).items():
            child = self.build(child_name, child_expr, False, path, optional=True)
            if child is not None:
                children.append(child)
        if children:
            dep.children = children
        return dep


class _LegacyWalker:
    """Tree builder over the v1 nested ``dependencies`` map."""

    def __init__(self, dependencies: dict[str, Any], cancel: threading.Event | None) -> None:
        self._top = dependencies
        self._cancel = cancel
        self._seen: set[str] = set()

    def roots(self, manifest: PackageManifest | None) -> list[tuple[str, str, bool]]:
        if manifest is not None and manifest.declares_dependencies:
            return manifest.declared()

        required: set[str] = set()
        stack = [self._top]
        while stack:
            scope = stack.pop()
            for meta in scope.values():
                if isinstance(meta, dict):
                    required.update(_mapping(meta.get("requires")))
                    if isinstance(meta.get("dependencies"), dict):
                        stack.append(meta["dependencies"])

        return [
            (name, str(meta.get("version", "")), bool(meta.get("dev")))
            for name, meta in self._top.items()
            if isinstance(meta, dict) and name not in required
        ]

    @staticmethod
    def _lookup(name: str, scopes: list[dict[str, Any]]) -> dict[str, Any] | None:
        for scope in scopes:
            meta = scope.get(name)
            if isinstance(meta, dict):
                return meta
        return None

    def build(
        self, name: str, expr: str, is_dev: bool, scopes: list[dict[str, Any]]
    ) -> Dependency:
        raise_if_cancelled(self._cancel)
        meta = self._lookup(name, scopes)
        if meta is None:
            return Dependency(
                name=name, version=clean_version(expr), version_constraint=expr, is_dev=is_dev
            )

        version = str(meta.get("version") or clean_version(expr))
        dep = Dependency(
            name=name,
            version=version,
            version_constraint=expr or version,
            resolved_version=meta.get("version"),
            is_dev=is_dev or bool(meta.get("dev")),
        )

        if dep.key in self._seen:
            return dep
        self._seen.add(dep.key)

        nested = meta.get("dependencies") if isinstance(meta.get("dependencies"), dict) else {}
        child_scopes = [nested, *scopes]
        if "requires" in meta:
            wanted = _mapping(meta.get("requires"))
        else:
            wanted = {
                child: str(child_meta.get("version", ""))
                for child, child_meta in nested.items()
                if isinstance(child_meta, dict)
            }

        children = [
            self.build(child_name, child_expr, bool(meta.get("dev")), child_scopes)
            for child_name, child_expr in wanted.items()
        ]
        if children:
            dep.children = children
        return dep


def parse(
    content: str,
    manifest: PackageManifest | None = None,
    cancel: threading.Event | None = None,
) -> list[Dependency]:
    """Return the direct dependencies of the lockfile root, with subtrees.

    Each ``name@version`` is expanded into children once per call; later
    occurrences are leaves.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse package-lock.json: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("Failed to parse package-lock.json: expected an object")

    schema = detect_schema(data)
    tree: list[Dependency] = []

    if schema is NpmLockSchema.PACKAGES:
        walker = _PackagesWalker(data["packages"], cancel)
        for name, expr, is_dev in walker.roots(manifest):
            dep = walker.build(name, expr, is_dev, "")
            if dep is not None:
                tree.append(dep)
    elif schema is NpmLockSchema.LEGACY:
        legacy = _LegacyWalker(data["dependencies"], cancel)
        for name, expr, is_dev in legacy.roots(manifest):
            tree.append(legacy.build(name, expr, is_dev, [data["dependencies"]]))

    return mark_transitive(tree)


def parse_file(
    path: Path,
    manifest: PackageManifest | None = None,
    cancel: threading.Event | None = None,
) -> list[Dependency]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FileMissingError(f"Cannot read {path}: {exc}") from exc
    return parse(content, manifest=manifest, cancel=cancel)
