"""structlog configuration shared by the bus and the services.

Module code logs through plain ``logging.getLogger(__name__)``; the root
handler renders those records with structlog, so every line carries the
service role and the trace id of the request being handled.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

from blog_choreography.core.ids import new_trace_id as _generate

TRACE_HEADER = "X-Trace-Id"

_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)


def current_trace_id() -> str | None:
    return _trace_id.get()


def bind_trace_id(trace_id: str | None = None) -> str:
    """Use *trace_id* (or a fresh one) for the rest of the current task."""
    tid = trace_id or _generate()
    _trace_id.set(tid)
    return tid


def _add_trace_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    tid = _trace_id.get()
    if tid is not None:
        event_dict.setdefault("trace_id", tid)
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    role: str | None = None,
) -> None:
    """Install the structlog renderer on the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for deployments, "console" for local runs.
        role: Service role stamped on every entry.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if role is not None:
        structlog.contextvars.bind_contextvars(role=role)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_trace_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    # One line per request is noise next to the per-event logs.
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))
