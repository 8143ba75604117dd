"""Prometheus metrics for the history store and rollback coordinator.

All collectors live on the default registry; the REST API exposes them at
``/api/v1/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

entries_recorded_total = Counter(
    "statehistory_entries_recorded_total",
    "History entries recorded, including rollback records.",
)

entries_evicted_total = Counter(
    "statehistory_entries_evicted_total",
    "History entries discarded because the store was over capacity.",
)

rollbacks_total = Counter(
    "statehistory_rollbacks_total",
    "Rollback invocations by terminal outcome.",
    ["outcome"],
)

persist_failures_total = Counter(
    "statehistory_persist_failures_total",
    "Failed writes of the history to its durable slot.",
)

saves_dropped_total = Counter(
    "statehistory_saves_dropped_total",
    "save_state calls dropped because no actor was bound.",
)

history_size = Gauge(
    "statehistory_history_size",
    "Number of entries currently held by the history store.",
)
