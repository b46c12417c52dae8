"""Prometheus metric definitions for the relay."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
orders_created_total = Counter("orders_created_total", "Total gateway orders created", ["service"])
gateway_errors_total = Counter("gateway_errors_total", "Gateway calls that failed", ["service", "operation"])
gateway_latency_seconds = Histogram("gateway_latency_seconds", "Gateway call latency seconds", ["service"])
payment_verifications_total = Counter(
    "payment_verifications_total",
    "Payment verification decisions by outcome",
    ["service", "app_id", "outcome"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Gateway webhook events received",
    ["service", "event_type"],
)
record_store_errors_total = Counter(
    "record_store_errors_total",
    "Record store operations that failed",
    ["service", "backend", "operation"],
)
notifications_sent_total = Counter(
    "notifications_sent_total",
    "Notifications handed to a provider",
    ["service", "provider"],
)
notification_failures_total = Counter(
    "notification_failures_total",
    "Notification provider calls that failed",
    ["service", "provider"],
)
side_effect_failures_total = Counter(
    "side_effect_failures_total",
    "Background side effects that raised",
    ["service", "effect"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
