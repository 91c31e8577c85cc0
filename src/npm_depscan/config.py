"""Scan settings loader.

Settings come from an optional JSON file and environment overrides::

    {"strategy": "auto", "commandTimeout": 20, "maxWorkers": 1}

Environment variables win over the file: ``NPM_DEPSCAN_STRATEGY``,
``NPM_DEPSCAN_TIMEOUT`` and ``NPM_DEPSCAN_MAX_WORKERS``.
"""

from __future__ import annotations

import enum
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CONFIG_PATH_ENV_VAR = "NPM_DEPSCAN_CONFIG"
STRATEGY_ENV_VAR = "NPM_DEPSCAN_STRATEGY"
TIMEOUT_ENV_VAR = "NPM_DEPSCAN_TIMEOUT"
MAX_WORKERS_ENV_VAR = "NPM_DEPSCAN_MAX_WORKERS"

DEFAULT_COMMAND_TIMEOUT = 20.0


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be loaded or is invalid."""


class ScanStrategy(str, enum.Enum):
    AUTO = "auto"
    NATIVE = "native"
    STATIC = "static"

    @classmethod
    def parse(cls, value: Any) -> ScanStrategy:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(item.value for item in cls)
            raise ConfigError(f"Invalid strategy '{value}' (expected one of: {choices})") from None


@dataclass(slots=True, frozen=True)
class ScanSettings:
    """Knobs of one scan call."""

    strategy: ScanStrategy = ScanStrategy.AUTO
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    max_workers: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScanSettings:
        strategy = ScanStrategy.parse(data.get("strategy", ScanStrategy.AUTO))
        return cls(
            strategy=strategy,
            command_timeout=_positive_float(
                data.get("commandTimeout", DEFAULT_COMMAND_TIMEOUT), "commandTimeout"
            ),
            max_workers=_positive_int(data.get("maxWorkers", 1), "maxWorkers"),
        )


def _positive_float(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{field}' must be a number, got {value!r}") from None
    if number <= 0:
        raise ConfigError(f"'{field}' must be greater than zero")
    return number


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{field}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{field}' must be an integer, got {value!r}") from None
    if number < 1:
        raise ConfigError(f"'{field}' must be at least 1")
    return number


def _resolve_config_path(path: Path | str | None = None) -> Path | None:
    """Resolve the configuration file path.

    Priority:
    1. Explicit path argument
    2. NPM_DEPSCAN_CONFIG environment variable
    3. None (defaults plus environment overrides)
    """
    if path is not None:
        return Path(path)

    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path)

    return None


def _read_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read configuration file: {exc}") from exc

    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in configuration file: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a JSON object")
    return data


def load_settings(path: Path | str | None = None) -> ScanSettings:
    """Load and validate scan settings.

    Args:
        path: Optional path to a JSON config file. If not provided, uses the
            NPM_DEPSCAN_CONFIG env var, or defaults when that is unset too.

    Raises:
        ConfigError: If the file cannot be read or contains invalid values.
    """
    config_path = _resolve_config_path(path)
    data = _read_config(config_path) if config_path is not None else {}

    overrides = {
        "strategy": os.environ.get(STRATEGY_ENV_VAR),
        "commandTimeout": os.environ.get(TIMEOUT_ENV_VAR),
        "maxWorkers": os.environ.get(MAX_WORKERS_ENV_VAR),
    }
    data.update({key: value for key, value in overrides.items() if value})
    return ScanSettings.from_dict(data)
