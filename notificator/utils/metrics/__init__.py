"""
Prometheus metrics used throughout the relay.

Metrics are organized into submodules by subsystem (WebSocket transport,
registry and push fanout) and re-exported here:

    from notificator.utils.metrics import push_deliveries_total
"""

from notificator.utils.metrics.push import (
    bind_attempts_total,
    push_deliveries_total,
    push_fanout_duration_seconds,
    push_requests_total,
    slots_registered_total,
    storage_errors_total,
)
from notificator.utils.metrics.websocket import (
    ws_connections_active,
    ws_connections_total,
    ws_events_received_total,
)

__all__ = [
    # Registry / push metrics
    "slots_registered_total",
    "bind_attempts_total",
    "push_requests_total",
    "push_deliveries_total",
    "push_fanout_duration_seconds",
    "storage_errors_total",
    # WebSocket metrics
    "ws_connections_active",
    "ws_connections_total",
    "ws_events_received_total",
]
