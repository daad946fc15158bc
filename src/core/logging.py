"""Structured JSON logging via structlog, plus per-session context binding."""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(*, level: int = logging.INFO, json_output: bool | None = None) -> None:
    """Configure structlog. Call once at process startup.

    ``json_output=None`` picks the console renderer on a TTY and JSON
    everywhere else.
    """

    # Shared processors for both structlog and stdlib loggers
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_output is None:
        json_output = not sys.stderr.isatty()

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_output
        else structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=shared_processors,
    )

    # Wire up stdlib root logger so httpx logs also flow through
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO; keep it out of the way
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def bind_session(session_id: str, **extra: object) -> None:
    """Tag every log line from this context (and tasks spawned from it)."""
    structlog.contextvars.bind_contextvars(session=session_id, **extra)


def clear_session() -> None:
    structlog.contextvars.clear_contextvars()
