"""
Structured logging for the AI decision core.

Every log line is a JSON object carrying the service name, an ISO 8601
timestamp and whatever request context is bound at the time: trace_id,
request_id, and once the caller is known, tenant_id (the garage) and user_id.
Gate decisions, provider attempts and usage records can therefore be joined
on trace_id.
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

_REQUEST_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
    "trace_id": trace_id_var,
    "request_id": request_id_var,
    "tenant_id": tenant_id_var,
    "user_id": user_id_var,
}

SERVICE_NAME = "garageos_ai_core"


def add_request_context(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """structlog processor: fields passed explicitly win over bound context."""
    for key, var in _REQUEST_CONTEXT.items():
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    event_dict["service"] = SERVICE_NAME
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    json_output: bool = True,
) -> None:
    """
    Configure structlog on top of the stdlib root logger.

    Args:
        log_level: Level name; unknown names fall back to INFO
        service_name: Value of the ``service`` field, defaults to SERVICE_NAME
        json_output: JSON lines when True, colored console output otherwise
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(**values: Optional[str]) -> None:
    """Set any of trace_id, request_id, tenant_id, user_id for the current task."""
    for key, value in values.items():
        _REQUEST_CONTEXT[key].set(value)


def clear_request_context() -> None:
    for var in _REQUEST_CONTEXT.values():
        var.set(None)


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


def new_correlation_id() -> str:
    """UUID4 string used for both trace and request ids."""
    return str(uuid.uuid4())
