import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.errors import MSG_INVALID_INPUT, AccessDeniedError, InvalidInputError
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.middleware import TraceIDMiddleware
from .core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    instrument_fastapi,
    record_exception,
    set_span_status,
    shutdown_tracing,
)
from .models.responses import ErrorResponse
from .routes import admin, ai, health, metrics
from .services.ai.service import get_decision_service
from .services.store import get_store

settings = get_settings()
configure_logging(log_level=settings.log_level, json_output=settings.log_json)
logger = get_logger(__name__)

# no exporter unless OTEL_EXPORTER_OTLP_ENDPOINT is set
configure_tracing()

app = FastAPI(
    title="GarageOS AI Decision Core",
    description="Gated, provider-agnostic AI features and deterministic quote audit for garages",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TraceIDMiddleware)
instrument_fastapi(app)


@app.on_event("startup")
async def startup_event():
    """Resolve storage and providers once so misconfiguration shows at boot."""
    store = get_store()
    configured = [p.name for p in get_decision_service().providers if p.is_configured()]
    if not configured:
        logger.warning(
            "app_startup_no_ai_provider",
            message="No provider credential configured. Set MISTRAL_API_KEY, GEMINI_API_KEY or OPENAI_API_KEY.",
        )
    logger.info(
        "app_startup_completed",
        store=type(store).__name__,
        providers=configured,
        rate_limit_per_minute=settings.rate_limit_per_minute,
    )


@app.on_event("shutdown")
async def shutdown_event():
    shutdown_tracing()
    logger.info("app_shutdown_completed")


def _current_trace_id() -> Optional[str]:
    return get_trace_id() or get_trace_id_from_context()


def _error_response(status_code: int, detail: Any) -> JSONResponse:
    """Every error body has the same shape: detail, status_code, trace_id."""
    trace_id = _current_trace_id()
    response = JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(detail=detail, status_code=status_code, trace_id=trace_id)),
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    """Gate refusals keep their own status: 401, 429 or 403."""
    logger.info("access_denied", reason=exc.reason, status_code=exc.status_code, path=request.url.path)
    return _error_response(exc.status_code, exc.user_message)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.info("invalid_input", path=request.url.path, error_count=len(exc.details))
    return _error_response(400, exc.user_message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed JSON or a non-object body is answered like any other invalid input."""
    logger.info("request_validation_failed", path=request.url.path, error_count=len(exc.errors()))
    return _error_response(400, MSG_INVALID_INPUT)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    started = getattr(request.state, "start_time", None)
    if exc.status_code >= 500:
        set_span_status(StatusCode.ERROR, str(exc.detail))
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
        duration_ms=int((time.perf_counter() - started) * 1000) if started is not None else None,
    )
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Internals never reach the client."""
    record_exception(exc)
    set_span_status(StatusCode.ERROR, str(exc))
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(500, "Internal server error")


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(ai.router, prefix="/ai", tags=["AI"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
