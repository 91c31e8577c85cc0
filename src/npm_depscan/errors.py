"""Error taxonomy for workspace scanning.

Every error raised by the scanner derives from :class:`ScanError`. Errors carry
a ``recoverable`` flag: in ``auto`` mode the strategy selector falls back to
static parsing for any recoverable native-side failure.
"""

from __future__ import annotations

import enum
import json
import threading
from typing import Any

import yaml


class FailureKind(str, enum.Enum):
    """Classification of a native scan failure, one user notice per kind."""

    NETWORK = "network"
    MISSING_DEPENDENCIES = "missing-dependencies"
    OTHER = "other"


NOTICES: dict[FailureKind, str] = {
    FailureKind.NETWORK: (
        "No internet connection. Using static scan (limited functionality). "
        "Connect to the internet for full analysis."
    ),
    FailureKind.MISSING_DEPENDENCIES: (
        "Some dependencies are not installed (node_modules missing or incomplete). "
        "Using static scan instead. Run your package manager's install command "
        "for full dependency tree analysis."
    ),
    FailureKind.OTHER: (
        "Could not run the native dependency scan (missing lockfile, CLI, or "
        "installed node_modules). Using static scan instead."
    ),
}

_NETWORK_PATTERNS = (
    "ENOTFOUND",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "ECONNRESET",
    "EAI_AGAIN",
    "getaddrinfo",
    "network",
)
_MISSING_PATTERNS = (
    "ELSPROBLEMS",
    "missing:",
)


class ScanError(RuntimeError):
    """Base error for scan failures."""

    recoverable: bool = True

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if recoverable is not None:
            self.recoverable = recoverable
        self.context: dict[str, Any] = dict(context or {})


class FileMissingError(ScanError):
    """Raised when a manifest or lockfile cannot be found or read."""


class ParseError(ScanError):
    """Raised when JSON, YAML or yarn.lock text is malformed."""


class ProcessTimeoutError(ScanError):
    """Raised when a package manager command exceeds its deadline."""


class ProcessFailureError(ScanError):
    """Raised when a package manager command fails with unusable output."""

    @classmethod
    def from_output(
        cls,
        message: str,
        *,
        stderr: str = "",
        returncode: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> ProcessFailureError:
        """Build the most specific subclass matching the captured stderr."""
        ctx = {"stderr": stderr, "returncode": returncode, **(context or {})}
        text = f"{message}\n{stderr}"
        kind = _classify_text(text)
        if kind is FailureKind.NETWORK:
            return NetworkFailureError(message, context=ctx)
        if kind is FailureKind.MISSING_DEPENDENCIES:
            return MissingInstalledDependenciesError(message, context=ctx)
        return cls(message, context=ctx)


class NetworkFailureError(ProcessFailureError):
    """A process failure caused by DNS, timeouts or refused connections."""


class MissingInstalledDependenciesError(ProcessFailureError):
    """A process failure caused by missing or incomplete node_modules."""


class UnknownScanError(ScanError):
    """Generic recoverable error wrapping an unexpected cause."""


class ScanCancelledError(ScanError):
    """Raised when the caller cancels a scan in progress."""

    recoverable = False


def _classify_text(text: str) -> FailureKind:
    if any(pattern in text for pattern in _NETWORK_PATTERNS):
        return FailureKind.NETWORK
    if any(pattern in text for pattern in _MISSING_PATTERNS):
        return FailureKind.MISSING_DEPENDENCIES
    return FailureKind.OTHER


def classify_failure(exc: BaseException) -> FailureKind:
    """Classify a native-side failure for fallback reporting."""
    if isinstance(exc, NetworkFailureError):
        return FailureKind.NETWORK
    if isinstance(exc, MissingInstalledDependenciesError):
        return FailureKind.MISSING_DEPENDENCIES
    text = str(exc)
    if isinstance(exc, ScanError):
        text = f"{text}\n{exc.context.get('stderr', '')}"
    return _classify_text(text)


def wrap_error(exc: BaseException, context: str) -> ScanError:
    """Convert an arbitrary exception into the scan error taxonomy."""
    if isinstance(exc, ScanError):
        return exc

    message = f"{context}: {exc}"
    if isinstance(exc, (FileNotFoundError, IsADirectoryError, PermissionError)):
        wrapped: ScanError = FileMissingError(message)
    elif isinstance(exc, (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError, ValueError)):
        wrapped = ParseError(message)
    else:
        wrapped = UnknownScanError(message)
    wrapped.__cause__ = exc
    return wrapped


def raise_if_cancelled(cancel: threading.Event | None) -> None:
    """Raise :class:`ScanCancelledError` when ``cancel`` has been set."""
    if cancel is not None and cancel.is_set():
        raise ScanCancelledError("Scan cancelled")
