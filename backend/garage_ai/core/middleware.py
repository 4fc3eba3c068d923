"""
Request context middleware.

For each HTTP request:
- the trace id comes from X-Trace-ID, then X-Request-ID, then the active
  OpenTelemetry span, and is generated when none is present
- a fresh request id is generated
- garage and user identity headers are bound into the log context
- an ``http.request`` span and the HTTP RED metrics are recorded
- both ids are echoed on the response
"""
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import GARAGE_HEADER, USER_HEADER
from .logging import bind_request_context, clear_request_context, get_logger, new_correlation_id
from .metrics import record_http_request
from .tracing import (
    StatusCode,
    get_trace_id_from_context,
    record_exception,
    set_span_attribute,
    set_span_status,
    start_span,
)

logger = get_logger(__name__)


def _as_uuid_layout(hex_id: str) -> str:
    if len(hex_id) != 32:
        return hex_id
    return "-".join((hex_id[:8], hex_id[8:12], hex_id[12:16], hex_id[16:20], hex_id[20:]))


def _header(request: Request, name: str) -> Optional[str]:
    return (request.headers.get(name) or "").strip() or None


def resolve_trace_id(request: Request) -> str:
    incoming = _header(request, "X-Trace-ID") or _header(request, "X-Request-ID")
    if incoming:
        return incoming
    otel_id = get_trace_id_from_context()
    return _as_uuid_layout(otel_id) if otel_id else new_correlation_id()


class TraceIDMiddleware(BaseHTTPMiddleware):
    """Binds trace, request, garage and user ids for the lifetime of a request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = resolve_trace_id(request)
        request_id = new_correlation_id()
        tenant_id = _header(request, GARAGE_HEADER)
        bind_request_context(
            trace_id=trace_id,
            request_id=request_id,
            tenant_id=tenant_id,
            user_id=_header(request, USER_HEADER),
        )

        method, path = request.method, request.url.path
        started = time.perf_counter()
        request.state.start_time = started

        try:
            with start_span("http.request", **{"http.method": method, "http.route": path, "garage.id": tenant_id}):
                logger.info(
                    "request_started",
                    method=method,
                    path=path,
                    client_host=request.client.host if request.client else None,
                )

                try:
                    response = await call_next(request)
                except Exception as exc:
                    elapsed = time.perf_counter() - started
                    record_exception(exc)
                    set_span_status(StatusCode.ERROR, str(exc))
                    set_span_attribute("http.status_code", 500)
                    record_http_request(method, path, 500, elapsed)
                    logger.error(
                        "request_failed",
                        method=method,
                        path=path,
                        error=str(exc),
                        error_type=type(exc).__name__,
                        latency_ms=int(elapsed * 1000),
                        exc_info=True,
                    )
                    raise

                elapsed = time.perf_counter() - started
                set_span_attribute("http.status_code", response.status_code)
                set_span_attribute("http.response.latency_ms", int(elapsed * 1000))
                record_http_request(method, path, response.status_code, elapsed)
                logger.info(
                    "request_completed",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                    latency_ms=int(elapsed * 1000),
                )
                response.headers["X-Trace-ID"] = trace_id
                response.headers["X-Request-ID"] = request_id
                return response
        finally:
            clear_request_context()
