"""Version string helpers shared by the lockfile and manifest parsers.

npm ranges are not evaluated here; the helpers only turn a declared range or a
lockfile reference into the clean version string shown to analyzers:

- peer-dependency suffixes: ``5.2.2(react@19.1.1)`` -> ``5.2.2``
- range operators: ``^1.2.3`` / ``~1.2.3`` / ``>=1.2.3 <2`` -> ``1.2.3``
- npm aliases: ``npm:string-width@4.2.3`` -> ``4.2.3``
"""

from __future__ import annotations

import re

from packaging.version import InvalidVersion, Version

_RANGE_PREFIX_RE = re.compile(r"^[\^~>=<v\s]+")


def strip_peer_suffix(ref: str) -> str:
    """Drop a pnpm peer-dependency annotation from a version reference."""
    return ref.split("(", 1)[0].strip()


def clean_version(expr: str) -> str:
    """Return the version part of a range, ref or alias expression."""
    value = strip_peer_suffix(str(expr).strip())
    if value.startswith("npm:"):
        value = value[4:]
        if "@" in value[1:]:
            value = value.rsplit("@", 1)[1]
    value = _RANGE_PREFIX_RE.sub("", value)
    # first comparator of a composite range like ">=1.0.0 <2.0.0" or "1.x || 2.x"
    return value.split(" ", 1)[0].strip()


def is_exact_version(expr: str) -> bool:
    """True when ``expr`` pins one concrete version rather than a range."""
    value = str(expr).strip()
    if not value or value[0] in "^~<>=*" or " " in value:
        return False
    if any(ch in value for ch in "xX*|"):
        return False
    try:
        Version(value)
    except InvalidVersion:
        return False
    return True


def lockfile_major(value: object) -> int | None:
    """Major component of a ``lockfileVersion`` field (``'9.0'``, ``5.4``, ``3``)."""
    if value is None:
        return None
    try:
        return Version(str(value)).major
    except InvalidVersion:
        return None


def split_specifier(spec: str) -> tuple[str, str]:
    """Split ``name@range`` into its parts, keeping the scope of ``@scope/name``."""
    spec = spec.strip().strip('"')
    at = spec.rfind("@")
    if at <= 0:
        return spec, ""
    return spec[:at], spec[at + 1 :]
