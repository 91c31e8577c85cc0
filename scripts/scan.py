#!/usr/bin/env python3
"""Local CLI entrypoint to scan a workspace and print its dependency trees.

Usage:
  python scripts/scan.py --root . [--config settings.json]
      [--strategy auto|native|static] [--timeout SECONDS] [--workers N]

Prints ``ProjectInfo`` as JSON on stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import structlog

from npm_depscan.config import ConfigError, ScanSettings, ScanStrategy, load_settings
from npm_depscan.core import scan_workspace
from npm_depscan.errors import ScanError
from npm_depscan.logging import setup_logging

log = structlog.get_logger("npm_depscan.cli")


def _apply_overrides(settings: ScanSettings, args: argparse.Namespace) -> ScanSettings:
    """Layer command line flags over loaded settings, validated like the file."""
    data = {
        "strategy": settings.strategy,
        "commandTimeout": settings.command_timeout,
        "maxWorkers": settings.max_workers,
    }
    if args.strategy:
        data["strategy"] = args.strategy
    if args.timeout is not None:
        data["commandTimeout"] = args.timeout
    if args.workers is not None:
        data["maxWorkers"] = args.workers
    return ScanSettings.from_dict(data)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--root", type=Path, default=Path("."))
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--strategy", choices=[item.value for item in ScanStrategy], default=None)
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level)

    try:
        settings = _apply_overrides(load_settings(args.config), args)
    except ConfigError as exc:
        log.error("cli.config_invalid", error=str(exc))
        return 2

    try:
        info = scan_workspace(args.root, settings)
    except ScanError as exc:
        log.error("cli.scan_failed", error=str(exc), error_type=type(exc).__name__)
        return 1

    json.dump(info.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
