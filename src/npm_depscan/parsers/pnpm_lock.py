"""Parse pnpm-lock.yaml into a resolved dependency tree.

Direct dependencies come from an importer (``.`` for the lockfile's own
project). Version references may carry a peer-dependency suffix, e.g.
``5.2.2(react@19.1.1)``; the clean version drops it while the full reference,
prefixed with the package name, is the key of the node's own entry:

- lockfile v9: ``snapshots['name@ref']``
- lockfile v6: ``packages['/name@ref']``
- lockfile v5: ``packages['/name/ref']`` (peer suffix written as ``_peer@x``)
"""

from __future__ import annotations

import enum
import threading
from pathlib import Path
from typing import Any

import structlog
import yaml

from ..errors import FileMissingError, ParseError, raise_if_cancelled
from ..models import Dependency, mark_transitive
from .versions import lockfile_major, strip_peer_suffix

log = structlog.get_logger("npm_depscan.parsers")

_SECTIONS = (
    ("dependencies", False),
    ("optionalDependencies", False),
    ("devDependencies", True),
)
_LOCAL_PREFIXES = ("link:", "file:", "workspace:")


class PnpmLockSchema(enum.Enum):
    V9 = 9
    V6 = 6
    V5 = 5


def detect_schema(data: dict[str, Any]) -> PnpmLockSchema:
    major = lockfile_major(data.get("lockfileVersion"))
    if major is None:
        return PnpmLockSchema.V9 if "snapshots" in data or "importers" in data else PnpmLockSchema.V5
    if major >= 9:
        return PnpmLockSchema.V9
    if major >= 6:
        return PnpmLockSchema.V6
    return PnpmLockSchema.V5


def _clean_ref(ref: str, schema: PnpmLockSchema) -> str:
    if ref.startswith(_LOCAL_PREFIXES):
        return ref
    value = strip_peer_suffix(ref)
    if schema is PnpmLockSchema.V5:
        value = value.split("_", 1)[0]
    value = value.lstrip("/")
    # aliased refs look like "string-width@4.2.3"
    if "@" in value[1:]:
        value = value.rsplit("@", 1)[1]
    return value


class _SnapshotWalker:
    def __init__(
        self, data: dict[str, Any], schema: PnpmLockSchema, cancel: threading.Event | None
    ) -> None:
        self._schema = schema
        self._cancel = cancel
        self._seen: set[str] = set()
        source = data.get("snapshots") if schema is PnpmLockSchema.V9 else data.get("packages")
        self._entries: dict[str, Any] = source if isinstance(source, dict) else {}

    def _entry(self, name: str, ref: str) -> dict[str, Any] | None:
        if self._schema is PnpmLockSchema.V9:
            keys = (f"{name}@{ref}", ref)
        elif self._schema is PnpmLockSchema.V6:
            keys = (f"/{name}@{ref}", ref)
        else:
            keys = (f"/{name}/{ref}", ref)
        for key in keys:
            if key in self._entries:
                entry = self._entries[key]
                return entry if isinstance(entry, dict) else {}
        return None

    def build(self, name: str, ref: str, constraint: str, is_dev: bool) -> Dependency:
        raise_if_cancelled(self._cancel)
        version = _clean_ref(ref, self._schema)
        dep = Dependency(
            name=name,
            version=version,
            version_constraint=constraint or ref,
            resolved_version=None if ref.startswith(_LOCAL_PREFIXES) else version,
            is_dev=is_dev,
        )

        if dep.key in self._seen:
            return dep
        self._seen.add(dep.key)

        entry = self._entry(name, ref)
        if not entry:
            return dep

        children: list[Dependency] = []
        for section in ("dependencies", "optionalDependencies"):
            deps = entry.get(section)
            if not isinstance(deps, dict):
                continue
            for child_name, child_ref in deps.items():
                child_ref = str(child_ref)
                children.append(self.build(str(child_name), child_ref, child_ref, is_dev))
        if children:
            dep.children = children
        return dep


def _importer(data: dict[str, Any], importer_id: str) -> dict[str, Any] | None:
    importers = data.get("importers")
    if importers is None:
        return data if importer_id == "." else None
    if not isinstance(importers, dict):
        raise ParseError("Failed to parse pnpm-lock.yaml: 'importers' must be a mapping")
    importer = importers.get(importer_id)
    return importer if isinstance(importer, dict) else None


def _importer_refs(importer: dict[str, Any], section: str) -> dict[str, tuple[str, str]]:
    """Return ``name -> (ref, specifier)`` for one importer section."""
    deps = importer.get(section)
    if not isinstance(deps, dict):
        return {}
    specifiers = importer.get("specifiers")
    specifiers = specifiers if isinstance(specifiers, dict) else {}

    refs: dict[str, tuple[str, str]] = {}
    for name, value in deps.items():
        if isinstance(value, dict):
            ref = value.get("version")
            if ref is None:
                continue
            refs[str(name)] = (str(ref), str(value.get("specifier") or ""))
        elif value is not None:
            refs[str(name)] = (str(value), str(specifiers.get(name) or ""))
    return refs


def parse(
    content: str,
    importer: str = ".",
    cancel: threading.Event | None = None,
) -> list[Dependency]:
    """Return the importer's direct dependencies with full transitive subtrees."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ParseError(f"Failed to parse pnpm-lock.yaml: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("Failed to parse pnpm-lock.yaml: invalid lockfile format")

    schema = detect_schema(data)
    root = _importer(data, importer)
    if root is None:
        log.warning("pnpm.importer_missing", importer=importer)
        return []

    walker = _SnapshotWalker(data, schema, cancel)
    tree: list[Dependency] = []
    emitted: set[str] = set()
    for section, is_dev in _SECTIONS:
        for name, (ref, specifier) in _importer_refs(root, section).items():
            if name in emitted:
                continue
            emitted.add(name)
            tree.append(walker.build(name, ref, specifier, is_dev))

    return mark_transitive(tree)


def parse_file(
    path: Path,
    importer: str = ".",
    cancel: threading.Event | None = None,
) -> list[Dependency]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FileMissingError(f"Cannot read {path}: {exc}") from exc
    return parse(content, importer=importer, cancel=cancel)
