"""Package manager CLI adapter interface."""

from __future__ import annotations

from pathlib import Path
from typing import IO, Protocol, runtime_checkable

from ..models import Dependency


@runtime_checkable
class CliAdapter(Protocol):
    """Interface every package manager adapter must satisfy.

    ``parse`` receives the command's stdout, opened as text from the
    executor's temp file, and returns the direct dependencies of the project
    with their installed subtrees.
    """

    name: str
    lockfile: str

    def is_supported(self, directory: Path) -> bool: ...

    def command(self) -> list[str]: ...

    def parse(self, stream: IO[str]) -> list[Dependency]: ...


class LockfileProbe:
    """Mixin: an adapter is supported where its lockfile sits."""

    lockfile: str

    def is_supported(self, directory: Path) -> bool:
        return (directory / self.lockfile).is_file()
