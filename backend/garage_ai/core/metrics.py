"""
Prometheus metrics for the AI decision core.

Metrics Categories:
- RED Metrics: HTTP rate, errors, duration
- AI Metrics: feature outcomes, provider attempts, schema rejections
- Gate Metrics: denials by reason
- Audit Metrics: findings by rule severity
- Resource Metrics: CPU, memory

Naming follows Prometheus conventions (_total for counters, _seconds for
durations).
"""
from typing import Optional

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from garage_ai.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=registry,
)

# ============================================================================
# AI METRICS
# ============================================================================

ai_requests_total = Counter(
    "ai_requests_total",
    "AI feature requests by final outcome",
    ["feature", "outcome"],
    registry=registry,
)

ai_request_latency_seconds = Histogram(
    "ai_request_latency_seconds",
    "End-to-end generation latency per feature",
    ["feature"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0],
    registry=registry,
)

ai_provider_attempts_total = Counter(
    "ai_provider_attempts_total",
    "Provider model attempts by outcome",
    ["provider", "model", "outcome"],
    registry=registry,
)

ai_schema_rejections_total = Counter(
    "ai_schema_rejections_total",
    "Provider answers rejected by JSON extraction or schema validation",
    ["shape", "provider"],
    registry=registry,
)

ai_gate_denials_total = Counter(
    "ai_gate_denials_total",
    "Access gate refusals by reason",
    ["feature", "reason"],
    registry=registry,
)

ai_recorder_failures_total = Counter(
    "ai_recorder_failures_total",
    "Usage or event writes that failed",
    ["kind"],
    registry=registry,
)

audit_findings_total = Counter(
    "audit_findings_total",
    "Quote audit findings emitted",
    ["severity"],
    registry=registry,
)

# ============================================================================
# RESOURCE METRICS
# ============================================================================

system_cpu_usage_percent = Gauge(
    "system_cpu_usage_percent",
    "System CPU usage percentage",
    registry=registry,
)

system_memory_usage_bytes = Gauge(
    "system_memory_usage_bytes",
    "System memory usage in bytes",
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path for metrics.

    Garage ids in admin paths are replaced with a placeholder to keep label
    cardinality bounded.

    Examples:
        /admin/garages/abc/usage -> /admin/garages/{garage_id}/usage
        /ai/client-message?x=1 -> /ai/client-message
    """
    if "?" in path:
        path = path.split("?")[0]

    if path.startswith("/admin/garages/"):
        parts = path.split("/")
        if len(parts) >= 4:
            parts[3] = "{garage_id}"
            return "/".join(parts)

    return path


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_ai_request(feature: str, outcome: str, latency_ms: Optional[int] = None) -> None:
    """Record the final outcome of one feature request."""
    ai_requests_total.labels(feature=feature, outcome=outcome).inc()
    if latency_ms is not None:
        ai_request_latency_seconds.labels(feature=feature).observe(latency_ms / 1000.0)


def record_provider_attempt(provider: str, model: str, outcome: str) -> None:
    """
    Record one provider/model attempt.

    Args:
        outcome: "success", "invalid_json", "schema_rejected" or an ErrorCategory value
    """
    ai_provider_attempts_total.labels(provider=provider, model=model, outcome=outcome).inc()


def record_schema_rejection(shape: str, provider: str) -> None:
    ai_schema_rejections_total.labels(shape=shape, provider=provider).inc()


def record_gate_denial(feature: str, reason: str) -> None:
    ai_gate_denials_total.labels(feature=feature, reason=reason).inc()


def record_recorder_failure(kind: str) -> None:
    ai_recorder_failures_total.labels(kind=kind).inc()


def record_audit_finding(severity: str) -> None:
    audit_findings_total.labels(severity=severity).inc()


def update_resource_metrics() -> None:
    """Refresh CPU and memory gauges, called on scrape."""
    try:
        system_cpu_usage_percent.set(psutil.cpu_percent(interval=None))
        system_memory_usage_bytes.set(psutil.virtual_memory().used)
    except Exception as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def get_metrics() -> bytes:
    """Prometheus text exposition of the registry."""
    update_resource_metrics()
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
