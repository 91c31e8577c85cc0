"""Shared fixtures and helpers for the test suite."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog


@pytest.fixture(autouse=True, scope="session")
def stdlib_logging():
    """Send structlog events through stdlib logging so they never reach stdout."""
    structlog.configure(
        processors=[structlog.stdlib.add_log_level, structlog.processors.KeyValueRenderer()],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def write_text(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., Path]:
    """Create ``<tmp>/<rel>/package.json`` and return the manifest path."""

    def _make(rel: str = ".", **fields: Any) -> Path:
        return write_json(tmp_path / rel / "package.json", fields)

    return _make
