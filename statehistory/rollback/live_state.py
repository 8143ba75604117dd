"""In-process live state for entities edited through the REST API.

Plays the part the console's form components play in the browser: it holds
the current value of each record, saves a history entry before committing
each change, and supplies the restore callback a rollback writes into.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import structlog

from statehistory.history.snapshot import clone_snapshot
from statehistory.rollback.coordinator import RollbackCoordinator

_log = structlog.get_logger(component="rollback.live_state")

EntityKey = tuple[str, str]


class LiveStateRegistry:
    """Current state keyed by ``(entity_type, entity_id)``."""

    def __init__(self, coordinator: RollbackCoordinator) -> None:
        self._coordinator = coordinator
        self._states: dict[EntityKey, Any] = {}
        self._lock = threading.Lock()

    def seed(self, entity_type: str, entity_id: str, state: Any) -> None:
        """Set an initial state without recording history."""
        value = clone_snapshot(state, "state")
        with self._lock:
            self._states[(entity_type, entity_id)] = value

    def get(self, entity_type: str, entity_id: str) -> Any | None:
        with self._lock:
            if (entity_type, entity_id) not in self._states:
                return None
            value = self._states[(entity_type, entity_id)]
        return clone_snapshot(value)

    def entities(self) -> list[EntityKey]:
        with self._lock:
            return sorted(self._states)

    def apply(self, entity_type: str, entity_id: str, new_state: Any, action: str) -> str | None:
        """Save the change to history, then commit *new_state*.

        The previous state of an entity never seen before is None.  Returns
        the history entry id, or None if the coordinator dropped the save.

        Raises:
            SnapshotError:        *new_state* cannot be serialised; nothing is committed.
            UnauthenticatedError: propagated from the coordinator's ERROR policy.
        """
        committed = clone_snapshot(new_state, "new_state")
        with self._lock:
            previous = self._states.get((entity_type, entity_id))
        entry_id = self._coordinator.save_state(action, entity_type, entity_id, previous, committed)
        with self._lock:
            self._states[(entity_type, entity_id)] = committed
        return entry_id

    def restorer(self, entity_type: str, entity_id: str) -> Callable[[Any], None]:
        """Return a restore callback that writes a snapshot back as live state."""

        def _restore(snapshot: Any) -> None:
            with self._lock:
                self._states[(entity_type, entity_id)] = snapshot
            _log.info("live_state_restored", entity_type=entity_type, entity_id=entity_id)

        return _restore
