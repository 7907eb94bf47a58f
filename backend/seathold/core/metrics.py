"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Seat command metrics
seat_commands = Counter(
    'seat_commands_total',
    'Seat commands processed',
    ['command', 'result']  # hold/release/complete/set_status, success/<error code>
)

seat_command_latency = Histogram(
    'seat_command_latency_seconds',
    'Seat command latency including the store round trip',
    ['command'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Expiry
holds_expired = Counter(
    'seat_holds_expired_total',
    'Holds released by the expiry sweeper'
)

sweep_failures = Counter(
    'seat_sweep_failures_total',
    'Sweeper ticks that raised'
)

# Realtime fan-out
broadcast_events = Counter(
    'realtime_broadcast_events_total',
    'Events broadcast to live channels',
    ['event']
)

channels_pruned = Counter(
    'realtime_channels_pruned_total',
    'Channels dropped because they were closed or a send failed'
)

active_channels = Gauge(
    'realtime_active_channels',
    'Number of live realtime channels'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus scrape handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_seat_command(command: str, result: str):
    """Record a seat command outcome. Result: success or an error code."""
    seat_commands.labels(command=command, result=result).inc()


def record_broadcast(event: str):
    broadcast_events.labels(event=event).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
