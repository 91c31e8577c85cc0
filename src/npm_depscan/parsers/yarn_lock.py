"""Parse a classic (v1) yarn.lock into a resolved dependency tree.

The format is line oriented, not JSON or YAML::

    "@scope/pkg@^1.0.0", "@scope/pkg@^1.2.0":
      version "1.3.0"
      resolved "https://registry.yarnpkg.com/..."
      dependencies:
        child "^2.0.0"

The lockfile cannot tell dev from production packages, so nodes default to
``is_dev=False``; the manifest's devDependencies decide for the roots.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import FileMissingError, ParseError, raise_if_cancelled
from ..models import Dependency, mark_transitive
from .package_json import PackageManifest
from .versions import clean_version, split_specifier

_DEP_LINE_RE = re.compile(r'^(?P<q>"?)(?P<name>[^"\s]+)(?P=q)\s+"?(?P<range>[^"]*)"?$')
_VERSION_RE = re.compile(r'^version\s+"?(?P<version>[^"]+)"?$')
_DEP_BLOCKS = ("dependencies:", "optionalDependencies:")


@dataclass(slots=True)
class YarnEntry:
    """One lockfile block, shared by every specifier in its header."""

    name: str
    specifiers: tuple[str, ...]
    version: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)

    @property
    def first_range(self) -> str:
        return split_specifier(self.specifiers[0])[1] if self.specifiers else ""


def parse_entries(content: str, cancel: threading.Event | None = None) -> list[YarnEntry]:
    """Split yarn.lock text into entries; entries without a version are dropped."""
    entries: list[YarnEntry] = []
    current: YarnEntry | None = None
    block_indent: int | None = None

    for lineno, raw in enumerate(content.splitlines(), start=1):
        if lineno % 500 == 0:
            raise_if_cancelled(cancel)
        line = raw.rstrip("\r").rstrip()
        if not line.strip() or line.lstrip().startswith("#"):
            continue

        indent = len(line) - len(line.lstrip())
        trimmed = line.strip()

        if indent == 0:
            if trimmed.startswith("__metadata"):
                raise ParseError("Failed to parse yarn.lock: yarn berry lockfiles are not supported")
            if not trimmed.endswith(":"):
                raise ParseError(f"Failed to parse yarn.lock: unexpected line {lineno}: {trimmed}")
            if current is not None and current.version:
                entries.append(current)
            specifiers = tuple(
                spec.strip().strip('"') for spec in trimmed[:-1].split(",") if spec.strip()
            )
            name = split_specifier(specifiers[0])[0] if specifiers else ""
            if not name:
                raise ParseError(f"Failed to parse yarn.lock: bad header at line {lineno}")
            current = YarnEntry(name=name, specifiers=specifiers)
            block_indent = None
            continue

        if current is None:
            raise ParseError(f"Failed to parse yarn.lock: indented line {lineno} before any entry")

        if block_indent is not None and indent <= block_indent:
            block_indent = None

        if block_indent is not None:
            match = _DEP_LINE_RE.match(trimmed)
            if not match:
                raise ParseError(f"Failed to parse yarn.lock: bad dependency at line {lineno}")
            current.dependencies[match.group("name")] = match.group("range")
            continue

        if trimmed in _DEP_BLOCKS:
            block_indent = indent
            continue

        version = _VERSION_RE.match(trimmed)
        if version:
            current.version = version.group("version")

    if current is not None and current.version:
        entries.append(current)
    return entries


class _Index:
    def __init__(self, entries: list[YarnEntry]) -> None:
        self.by_spec: dict[str, YarnEntry] = {}
        self.by_version: dict[str, YarnEntry] = {}
        self.by_name: dict[str, list[YarnEntry]] = {}
        for entry in entries:
            for spec in entry.specifiers:
                self.by_spec[spec] = entry
            self.by_version[f"{entry.name}@{clean_version(entry.version or '')}"] = entry
            self.by_name.setdefault(entry.name, []).append(entry)

    def lookup(self, name: str, expr: str) -> YarnEntry | None:
        entry = self.by_spec.get(f"{name}@{expr}")
        if entry is None:
            entry = self.by_version.get(f"{name}@{clean_version(expr)}")
        if entry is None and len(self.by_name.get(name, [])) == 1:
            entry = self.by_name[name][0]
        return entry


class _TreeBuilder:
    def __init__(self, index: _Index, cancel: threading.Event | None) -> None:
        self._index = index
        self._cancel = cancel
        self._seen: set[str] = set()

    def build(self, name: str, expr: str, entry: YarnEntry | None, is_dev: bool) -> Dependency:
        raise_if_cancelled(self._cancel)
        if entry is None or not entry.version:
            return Dependency(
                name=name, version=clean_version(expr), version_constraint=expr, is_dev=is_dev
            )

        version = clean_version(entry.version)
        dep = Dependency(
            name=name,
            version=version,
            version_constraint=expr or entry.version,
            resolved_version=version,
            is_dev=is_dev,
        )
        if dep.key in self._seen:
            return dep
        self._seen.add(dep.key)

        children = [
            self.build(child, child_expr, self._index.lookup(child, child_expr), is_dev)
            for child, child_expr in entry.dependencies.items()
        ]
        if children:
            dep.children = children
        return dep


def _inferred_roots(entries: list[YarnEntry]) -> list[YarnEntry]:
    required: set[str] = set()
    for entry in entries:
        required.update(f"{child}@{expr}" for child, expr in entry.dependencies.items())
    return [
        entry for entry in entries if not any(spec in required for spec in entry.specifiers)
    ]


def parse(
    content: str,
    manifest: PackageManifest | None = None,
    cancel: threading.Event | None = None,
) -> list[Dependency]:
    """Return direct dependencies with their resolved subtrees.

    Roots are the manifest's declared dependencies when it declares any,
    otherwise the entries no other entry depends on.
    """
    entries = parse_entries(content, cancel)
    index = _Index(entries)
    builder = _TreeBuilder(index, cancel)

    tree: list[Dependency] = []
    if manifest is not None and manifest.declares_dependencies:
        for name, expr, is_dev in manifest.declared():
            tree.append(builder.build(name, expr, index.lookup(name, expr), is_dev))
    else:
        for entry in _inferred_roots(entries):
            tree.append(builder.build(entry.name, entry.first_range, entry, False))

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
