"""
Structured logging configuration using structlog wrapping stdlib.

Console output is human-readable by default; set TRACKER_LOG_FORMAT=json
for one JSON object per line (e.g. when the host collects logs).

Engine modules log through get_logger(); models and stage helpers use plain
stdlib loggers. Both end up in the same handler and format. Logger names
are shown relative to the package ("tasks.sync" rather than
"tracker.tasks.sync"), and a CLI run binds its action and occurrence date
so every line it emits can be traced back to the command.

Usage:
    from tracker.logging_config import bind_run_context, get_logger, setup_logging
    setup_logging()
    bind_run_context(action="edit-stages", date="2025-01-15")
    logger = get_logger(__name__)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

PACKAGE_PREFIX = "tracker."


def shorten_logger_name(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Drop the package prefix from the `logger` field."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith(PACKAGE_PREFIX):
        event_dict["logger"] = name[len(PACKAGE_PREFIX):]
    return event_dict


def bind_run_context(**values: Any) -> None:
    """Attach values (action, date, task id) to every following log line of this run."""
    structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    if level is None:
        level = os.environ.get("TRACKER_LOG_LEVEL", "INFO")

    if json_output is None:
        json_output = os.environ.get("TRACKER_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        shorten_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain gives the plain stdlib loggers the same fields
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stderr keeps stdout free for the CLI's JSON results
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["bind_run_context", "get_logger", "setup_logging", "shorten_logger_name"]
