"""Structured logging setup using structlog.

Cascade runs bind their request id and symbol into the context-local log
context, so every event emitted while a cascade is in flight carries them.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog


def setup_logging(log_level: str = "INFO", json_logs: bool | None = None) -> None:
    """Configure structlog. Set JSON_LOGS=1 for JSON output, default is console (dev)."""
    if json_logs is None:
        json_logs = os.environ.get("JSON_LOGS", "").strip() in ("1", "true", "yes")

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Quiet noisy libraries
    for name in ("httpx", "httpcore", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def cascade_log_context(request_id: str, symbol: str) -> Iterator[None]:
    """Bind request_id/symbol to every log line emitted inside the block."""
    tokens = structlog.contextvars.bind_contextvars(request_id=request_id, symbol=symbol)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
