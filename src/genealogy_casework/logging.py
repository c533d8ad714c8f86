"""Structlog-based logging for Genealogy Casework.

Library modules log through ``structlog.get_logger(__name__)`` with dotted
event names (``relationship.create``). Only the CLI writes to the console
directly; log lines go to stderr so command output stays clean.
"""
from __future__ import annotations

import os
import sys
from typing import Literal, TextIO

import logging
import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def level_from_env(default: LogLevel = "WARNING") -> LogLevel:
    """Read ``CASEWORK_LOG_LEVEL``, falling back to ``default`` on junk."""
    value = os.getenv("CASEWORK_LOG_LEVEL", default).strip().upper()
    return value if value in _LEVELS else default  # type: ignore[return-value]


def configure_logging(
    level: LogLevel = "INFO",
    *,
    json_output: bool = True,
    stream: TextIO | None = None,
) -> None:
    numeric = getattr(logging, level)
    logging.basicConfig(format="%(message)s", level=numeric, stream=stream or sys.stderr)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "genealogy_casework"):
    return structlog.get_logger(name)
