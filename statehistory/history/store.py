"""Bounded, newest-first history log with a durable mirror.

HistoryStore is the only component that touches the durable slot.  Every
mutating operation finishes its in-memory change and its persistence step
before the next operation may start; a re-entrant lock enforces this when
the store is shared across threads, and lets consume_for_rollback call
record_change from inside its own critical section.
"""

from __future__ import annotations

import dataclasses
import json
import threading
import time
import uuid
from datetime import UTC, datetime
from typing import Any

import structlog

from statehistory.history.errors import PersistenceError, SnapshotError
from statehistory.history.slot import DurableSlot
from statehistory.history.snapshot import clone_snapshot
from statehistory.models.entries import ROLLBACK_PREFIX, SYSTEM_ACTOR, ChangeEntry
from statehistory.observability.metrics import (
    entries_evicted_total,
    entries_recorded_total,
    history_size,
    persist_failures_total,
)

_log = structlog.get_logger(component="history.store")

DEFAULT_MAX_ENTRIES = 100

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class HistoryStore:
    """Append-only change log capped at ``max_entries``.

    Entries are held newest first.  When an insert pushes the log over
    capacity the oldest entries are dropped, whatever their entity type.
    Build one instance per process and pass it to whoever needs it.
    """

    def __init__(self, slot: DurableSlot, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._slot = slot
        self._max_entries = max_entries
        self._entries: list[ChangeEntry] = []
        self._lock = threading.RLock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_change(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        previous_state: Any,
        current_state: Any,
        user_id: str,
        user_name: str,
    ) -> str:
        """Record one change and return the new entry's id.

        Both snapshots are deep-copied, and the whole log is encoded with
        the new entry in place, before the in-memory log changes.  A
        snapshot that cannot be serialised leaves the history untouched.

        Raises:
            ValueError:    an identifying string is empty.
            SnapshotError: a snapshot contains a cycle, an unsupported value,
                           or nests too deeply to encode.
        """
        _require_non_empty(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            user_name=user_name,
        )
        previous = clone_snapshot(previous_state, "previous_state")
        current = clone_snapshot(current_state, "current_state")

        with self._lock:
            entry = ChangeEntry(
                id=self._new_id(),
                timestamp=datetime.now(tz=UTC),
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_state=previous,
                current_state=current,
                user_id=user_id,
                user_name=user_name,
            )
            entries = [entry, *self._entries]
            overflow = len(entries) - self._max_entries
            if overflow > 0:
                del entries[self._max_entries :]
            try:
                payload = _encode(entries)
            except (ValueError, RecursionError) as exc:
                raise SnapshotError("entry", exc) from exc

            self._entries = entries
            if overflow > 0:
                entries_evicted_total.inc(overflow)
            self._write(payload)

        entries_recorded_total.inc()
        _log.debug(
            "history_entry_recorded",
            entry_id=entry.id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
        )
        return entry.id

    def consume_for_rollback(self, entry_id: str) -> ChangeEntry | None:
        """Record the rollback of *entry_id* and return a copy of the original entry.

        The new record is labelled ``"Rollback: <action>"``, swaps the
        original's snapshots and is attributed to the system identity.  The
        caller restores live state from the returned entry's previous_state.
        Returns None, recording nothing, when the id is unknown.
        """
        with self._lock:
            entry = self._find(entry_id)
            if entry is None:
                _log.info("rollback_entry_not_found", entry_id=entry_id)
                return None
            rollback_id = self.record_change(
                ROLLBACK_PREFIX + entry.action,
                entry.entity_type,
                entry.entity_id,
                entry.current_state,
                entry.previous_state,
                SYSTEM_ACTOR.id,
                SYSTEM_ACTOR.name,
            )
        _log.info(
            "rollback_recorded",
            entry_id=entry_id,
            rollback_entry_id=rollback_id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
        )
        return _detached(entry)

    def clear_history(self, entity_type: str | None = None) -> int:
        """Remove every entry, or only those of *entity_type*.

        Surviving entries keep their relative order.  Always persists, even
        when nothing matched.  Returns the number of entries removed.
        """
        with self._lock:
            before = len(self._entries)
            if entity_type:
                self._entries = [e for e in self._entries if e.entity_type != entity_type]
            else:
                self._entries = []
            removed = before - len(self._entries)
            self._persist()
        _log.info("history_cleared", entity_type=entity_type or "*", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_history(self, entity_type: str | None = None, entity_id: str | None = None) -> list[ChangeEntry]:
        """Return matching entries, newest first.

        Scoping by id requires a type: ids are only meaningful within one.
        Each entry carries its own copy of the snapshots, so mutating them
        never reaches the log.

        Raises:
            ValueError: *entity_id* was given without *entity_type*.
        """
        if entity_id and not entity_type:
            raise ValueError("entity_id filter requires entity_type")
        with self._lock:
            entries = list(self._entries)
        if entity_type:
            entries = [e for e in entries if e.entity_type == entity_type]
        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]
        return [_detached(e) for e in entries]

    def get_entry(self, entry_id: str) -> ChangeEntry | None:
        with self._lock:
            entry = self._find(entry_id)
        return None if entry is None else _detached(entry)

    # ------------------------------------------------------------------
    # Durable slot
    # ------------------------------------------------------------------

    def load_from_durable_storage(self) -> int:
        """Replace the in-memory log with the slot's contents.

        Any failure to read or decode the slot is logged and leaves the
        history empty; a corrupt slot must never stop the process starting.
        Returns the number of entries loaded.
        """
        try:
            raw = self._slot.read()
            entries = _decode(raw) if raw else []
        except (PersistenceError, OSError, ValueError, KeyError, TypeError, RecursionError) as exc:
            _log.warning("history_load_failed", slot=self._slot.name, error=str(exc))
            entries = []

        with self._lock:
            self._entries = entries[: self._max_entries]
            history_size.set(len(self._entries))
            loaded = len(self._entries)
        _log.info("history_loaded", slot=self._slot.name, entries=loaded, discarded=len(entries) - loaded)
        return loaded

    def _persist(self) -> None:
        """Write the whole log to the slot.  Caller holds the lock."""
        try:
            payload = _encode(self._entries)
        except (ValueError, RecursionError) as exc:
            persist_failures_total.inc()
            _log.warning("history_persist_failed", slot=self._slot.name, error=str(exc))
            return
        self._write(payload)

    def _write(self, payload: str) -> None:
        history_size.set(len(self._entries))
        try:
            self._slot.write(payload)
        except (PersistenceError, OSError) as exc:
            persist_failures_total.inc()
            _log.warning("history_persist_failed", slot=self._slot.name, error=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find(self, entry_id: str) -> ChangeEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def _new_id(self) -> str:
        """``rollback_<epoch-ms>_<9 base36 chars>``, unique among held entries."""
        while True:
            suffix_num = uuid.uuid4().int
            suffix = "".join(_BASE36[(suffix_num >> (6 * i)) % 36] for i in range(9))
            candidate = f"rollback_{time.time_ns() // 1_000_000}_{suffix}"
            if self._find(candidate) is None:
                return candidate


def _detached(entry: ChangeEntry) -> ChangeEntry:
    return dataclasses.replace(
        entry,
        previous_state=clone_snapshot(entry.previous_state, "previous_state"),
        current_state=clone_snapshot(entry.current_state, "current_state"),
    )


def _encode(entries: list[ChangeEntry]) -> str:
    return json.dumps([e.to_dict() for e in entries], allow_nan=False)


def _decode(raw: str) -> list[ChangeEntry]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError(f"history document must be a list, got {type(data).__name__}")
    return [ChangeEntry.from_dict(item) for item in data]


def _require_non_empty(**fields: str) -> None:
    for name, value in fields.items():
        if not value:
            raise ValueError(f"{name} must be a non-empty string")
