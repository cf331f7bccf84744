"""Structured logging setup using structlog.

structlog events and records from stdlib loggers (aiohttp, SQLAlchemy)
share one handler on the root logger, so both render as JSON lines or
console output depending on ``logging.format``.
"""

from __future__ import annotations

import logging
import sys

import structlog

from opswatch.core.config import LoggingConfig

# Libraries that log every request or statement at INFO.
_CHATTY_LOGGERS = ("aiohttp.access", "sqlalchemy.engine")


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(
    config: LoggingConfig | None = None,
    level: str | None = None,
    fmt: str | None = None,
) -> None:
    """Configure structlog and route stdlib logging through the same renderer.

    Args:
        config: Logging section of the settings. Defaults are used if None.
        level: Log level override (e.g. "DEBUG").
        fmt: Renderer override ("json" or "console").
    """
    config = config or LoggingConfig()
    log_level = logging.getLevelName((level or config.level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(fmt or config.format),
        ],
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
