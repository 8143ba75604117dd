"""History store for statehistory.

Keeps the bounded, newest-first log of change records and mirrors it to a
single durable slot.

Submodules:
    errors   -- HistoryError hierarchy.
    snapshot -- Deep copy of caller snapshots by JSON round trip.
    slot     -- DurableSlot protocol with file and in-memory implementations.
    store    -- HistoryStore: record, query, rollback bookkeeping, clear, load.
"""

from statehistory.history.errors import (
    HistoryError,
    PersistenceError,
    SnapshotError,
    UnauthenticatedError,
)
from statehistory.history.slot import DurableSlot, FileSlot, MemorySlot
from statehistory.history.store import DEFAULT_MAX_ENTRIES, HistoryStore

__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "DurableSlot",
    "FileSlot",
    "HistoryError",
    "HistoryStore",
    "MemorySlot",
    "PersistenceError",
    "SnapshotError",
    "UnauthenticatedError",
]
