"""Structured logging configuration: structlog on top of stdlib logging."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

LOG_LEVEL_ENV_VAR = "NPM_DEPSCAN_LOG_LEVEL"
LOG_FORMAT_ENV_VAR = "NPM_DEPSCAN_LOG_FORMAT"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog and stdlib logging.

    Arguments win over the environment:
        NPM_DEPSCAN_LOG_LEVEL  - log level (default: INFO)
        NPM_DEPSCAN_LOG_FORMAT - console | json (default: console)

    Logs go to stderr so that scan results on stdout stay machine readable.
    """
    log_level = (level or os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")).upper()
    log_format = (fmt or os.environ.get(LOG_FORMAT_ENV_VAR, "console")).lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": "WARNING",
            },
            "loggers": {
                "npm_depscan": {"level": log_level},
            },
        }
    )
