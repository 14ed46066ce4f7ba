"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking metrics
booking_attempts = Counter(
    "studyhall_booking_attempts_total",
    "Total booking attempts",
    ["status"],  # created, conflict, rejected
)

booking_latency = Histogram(
    "studyhall_booking_latency_seconds",
    "Booking creation latency",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

seat_version_conflicts = Counter(
    "studyhall_seat_version_conflicts_total",
    "Seat version conflicts hit while creating bookings",
)

# Payment metrics
payment_outcomes = Counter(
    "studyhall_payment_outcomes_total",
    "Payment outcomes per rail",
    ["method", "result"],  # result: started, completed, failed, refunded
)

payment_poll_attempts = Counter(
    "studyhall_payment_poll_attempts_total",
    "Payment status checks issued by the poller",
    ["method"],
)

gateway_errors = Counter(
    "studyhall_gateway_errors_total",
    "Errors returned by payment providers",
    ["provider", "operation"],
)

webhook_deliveries = Counter(
    "studyhall_webhook_deliveries_total",
    "Inbound payment webhooks",
    ["provider", "result"],  # processed, ignored, rejected
)

# Cache metrics
cache_operations = Counter(
    "studyhall_cache_operations_total",
    "Cache operations",
    ["operation", "result"],  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Render all registered metrics in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_booking_attempt(status: str) -> None:
    booking_attempts.labels(status=status).inc()


def record_payment_outcome(method: str, result: str) -> None:
    payment_outcomes.labels(method=method, result=result).inc()


def record_poll_attempt(method: str) -> None:
    payment_poll_attempts.labels(method=method).inc()


def record_gateway_error(provider: str, operation: str) -> None:
    gateway_errors.labels(provider=provider, operation=operation).inc()


def record_webhook(provider: str, result: str) -> None:
    webhook_deliveries.labels(provider=provider, result=result).inc()


def record_cache_operation(operation: str, hit: bool) -> None:
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
