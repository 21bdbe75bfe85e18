"""
Prometheus metrics for the carpool core.
Exposed at /metrics by the application.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'carpool_booking_attempts_total',
    'Seat booking attempts',
    ['outcome']  # success, trip_full, already_booked, ...
)

booking_latency = Histogram(
    'carpool_booking_latency_seconds',
    'Time spent inside the atomic booking step',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_cancellations = Counter(
    'carpool_booking_cancellations_total',
    'Bookings moved to cancelled',
    ['reason']  # passenger_cancelled, driver_removed, trip_withdrawn, outing_cancelled
)

# Cascade metrics
cascade_runs = Counter(
    'carpool_cascade_runs_total',
    'Cascade executions',
    ['trigger']  # trip_withdrawn, outing_cancelled
)

# Notification metrics
notifications = Counter(
    'carpool_notifications_total',
    'Notification events handed to the sink',
    ['event_type', 'result']  # delivered, failed
)

# Cache metrics
cache_operations = Counter(
    'carpool_cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Render the default registry in the Prometheus text format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    booking_attempts.labels(outcome=outcome).inc()


def record_cancellations(reason: str, count: int = 1):
    if count:
        booking_cancellations.labels(reason=reason).inc(count)


def record_cascade(trigger: str):
    cascade_runs.labels(trigger=trigger).inc()


def record_notification(event_type: str, delivered: bool):
    result = "delivered" if delivered else "failed"
    notifications.labels(event_type=event_type, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
