"""Structured logging setup.

structlog on top of stdlib logging: JSON lines when stderr is not a TTY, the
console renderer otherwise. `request_id` / `run_id` context variables are
injected into every event.
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any

import structlog


_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
_run_id_ctx: ContextVar[str] = ContextVar("run_id", default="")


def bind_request_id(rid: str) -> None:
    _request_id_ctx.set(rid)


def bind_run_id(run_id: str) -> None:
    _run_id_ctx.set(run_id)


def _inject_context(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = _request_id_ctx.get("")
    run_id = _run_id_ctx.get("")
    if rid:
        event_dict.setdefault("request_id", rid)
    if run_id:
        event_dict.setdefault("run_id", run_id)
    return event_dict


_configured = False


def setup_logging() -> None:
    """Configure structlog + stdlib logging. Runs once per process."""
    global _configured
    if _configured:
        return
    _configured = True

    log_format = os.getenv("ARENA_LOG_FORMAT", "auto").strip().lower()
    log_level = os.getenv("ARENA_LOG_LEVEL", "INFO").strip().upper()

    if log_format == "auto":
        use_json = not sys.stderr.isatty()
    else:
        use_json = log_format == "json"

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        renderer: Any = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *([structlog.processors.format_exc_info] if use_json else []),
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level, logging.INFO))

    # Provider SDK / HTTP client chatter.
    for noisy in ("uvicorn.access", "httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if not _configured:
        setup_logging()
    return structlog.get_logger(name)  # type: ignore[return-value]
