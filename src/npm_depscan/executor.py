"""Run package manager commands with stdout streamed to a temp file.

Dependency listings of large workspaces easily reach hundreds of megabytes, so
stdout is never buffered in memory. The temp directory lives exactly as long as
the ``with`` block that uses the output.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from collections.abc import Iterator, Sequence

import structlog

from .errors import ProcessFailureError, ProcessTimeoutError, ScanCancelledError

log = structlog.get_logger("npm_depscan.executor")

DEFAULT_TIMEOUT = 20.0
_POLL_INTERVAL = 0.1
_TEMP_PREFIX = "npm-depscan-"


@dataclass(slots=True, frozen=True)
class CommandOutput:
    """Result of a finished command; ``stdout_path`` is removed on block exit."""

    argv: tuple[str, ...]
    stdout_path: Path
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stdout_size(self) -> int:
        try:
            return self.stdout_path.stat().st_size
        except OSError:
            return 0


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        log.warning("executor.kill_unconfirmed", pid=proc.pid)


def _wait(
    proc: subprocess.Popen,
    argv: Sequence[str],
    timeout: float,
    cancel: threading.Event | None,
) -> int:
    deadline = time.monotonic() + timeout
    while True:
        try:
            return proc.wait(timeout=_POLL_INTERVAL)
        except subprocess.TimeoutExpired:
            pass
        if cancel is not None and cancel.is_set():
            _kill(proc)
            raise ScanCancelledError(f"Command cancelled: {' '.join(argv)}")
        if time.monotonic() >= deadline:
            _kill(proc)
            raise ProcessTimeoutError(
                f"Command timed out after {timeout:g}s: {' '.join(argv)}",
                context={"timeout": timeout},
            )


@contextmanager
def stream_command(
    argv: Sequence[str],
    cwd: Path,
    timeout: float = DEFAULT_TIMEOUT,
    cancel: threading.Event | None = None,
) -> Iterator[CommandOutput]:
    """Run ``argv`` in ``cwd`` and yield its captured output.

    A non-zero exit is reported through ``CommandOutput.returncode`` rather
    than raised, since package managers often print a usable tree alongside a
    failing status. Raises :class:`ProcessTimeoutError` when the deadline
    passes and :class:`ProcessFailureError` when the program cannot start.
    """
    executable = shutil.which(argv[0])
    if executable is None:
        raise ProcessFailureError(
            f"Command not found: {argv[0]}", context={"argv": list(argv), "cwd": str(cwd)}
        )

    tmpdir = Path(tempfile.mkdtemp(prefix=_TEMP_PREFIX))
    stdout_path = tmpdir / "stdout.json"
    stderr_path = tmpdir / "stderr.log"
    try:
        log.debug("executor.command_started", argv=list(argv), cwd=str(cwd), output=str(stdout_path))
        with stdout_path.open("wb") as out, stderr_path.open("wb") as err:
            try:
                proc = subprocess.Popen(
                    [executable, *argv[1:]],
                    cwd=cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=err,
                )
            except OSError as exc:
                raise ProcessFailureError(
                    f"Command error: {' '.join(argv)}. {exc}",
                    context={"argv": list(argv), "cwd": str(cwd)},
                ) from exc
            returncode = _wait(proc, argv, timeout, cancel)

        stderr = stderr_path.read_text(encoding="utf-8", errors="replace")
        output = CommandOutput(
            argv=tuple(argv),
            stdout_path=stdout_path,
            stderr=stderr,
            returncode=returncode,
        )
        log.debug(
            "executor.command_finished",
            argv=list(argv),
            returncode=returncode,
            stdout_bytes=output.stdout_size(),
        )
        yield output
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)
