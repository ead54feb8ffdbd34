"""Structured logging configuration using structlog.

tsk logs only to stderr (stdout carries command output and MCP JSON-RPC),
plus an optional JSON-lines file for agents that want a persistent trail.
"""

import logging
import sys
from collections.abc import Callable, MutableMapping, Sequence
from pathlib import Path
from typing import Any, cast

import structlog

Processor = Callable[
    [Any, str, MutableMapping[str, Any]],
    MutableMapping[str, Any] | str | bytes | bytearray | tuple[Any, ...],
]

# Third-party loggers that are chatty at DEBUG and say nothing about tasks
_QUIET_LOGGERS = ("aiosqlite", "asyncio", "mcp")

_SHARED_PROCESSORS: Sequence[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def setup_logging(log_level: str = "WARNING", log_file: Path | None = None) -> None:
    """Configure structured logging with structlog.

    Safe to call more than once; each call replaces the handlers of the last.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file receiving one JSON object per event
    """
    level = getattr(logging, log_level.upper())

    # Bound to the current sys.stderr so CliRunner and pytest capture it
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        _formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    )
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
