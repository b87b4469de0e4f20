"""Prometheus metrics for WebSocket transport connections."""

from notificator.utils.metrics._helpers import (
    _get_or_create_counter,
    _get_or_create_gauge,
)

ws_connections_active = _get_or_create_gauge(
    "ws_connections_active", "Number of active WebSocket connections"
)

ws_connections_total = _get_or_create_counter(
    "ws_connections_total",
    "Total WebSocket connections",
    ["status"],  # accepted, disconnected
)

ws_events_received_total = _get_or_create_counter(
    "ws_events_received_total",
    "Total client events received over WebSocket",
    ["event"],
)
