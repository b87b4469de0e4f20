"""
Prometheus metrics for the connection registry and push fanout.

Tracks the registration handshake (register, bind), push requests, per-handle
delivery outcomes and connection store failures.
"""

from notificator.utils.metrics._helpers import (
    _get_or_create_counter,
    _get_or_create_histogram,
)

slots_registered_total = _get_or_create_counter(
    "notificator_slots_registered_total",
    "Total pending connection slots registered",
    ["result"],  # created, duplicate
)

bind_attempts_total = _get_or_create_counter(
    "notificator_bind_attempts_total",
    "Total attempts to bind a transport handle to a pending slot",
    ["result"],  # bound, rejected
)

push_requests_total = _get_or_create_counter(
    "notificator_push_requests_total", "Total push requests"
)

push_deliveries_total = _get_or_create_counter(
    "notificator_push_deliveries_total",
    "Total per-handle message deliveries",
    ["status"],  # success, error
)

push_fanout_duration_seconds = _get_or_create_histogram(
    "notificator_push_fanout_duration_seconds",
    "Time spent delivering one push to every live handle of a user",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

storage_errors_total = _get_or_create_counter(
    "notificator_storage_errors_total",
    "Total connection store round trips that failed",
    ["operation"],
)
