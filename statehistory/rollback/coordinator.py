"""Rollback coordinator: the application-facing side of the history store.

Binds the store to the acting identity and runs the restore-callback
protocol.  A rollback moves through

    Requested -> Located | NotFound
    Located   -> Restoring -> Completed | RestoreFailed

and cannot be cancelled once located: the audit record is written before
the caller's restore callback runs and is kept even if that callback fails.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from statehistory.history.errors import UnauthenticatedError
from statehistory.history.snapshot import clone_snapshot
from statehistory.history.store import HistoryStore
from statehistory.models.config import UnauthenticatedPolicy
from statehistory.models.entries import ChangeEntry, RollbackOutcome, RollbackResult
from statehistory.observability.metrics import rollbacks_total, saves_dropped_total
from statehistory.rollback.identity import IdentityProvider

_log = structlog.get_logger(component="rollback.coordinator")

RestoreCallback = Callable[[Any], Awaitable[None] | None]


class RollbackCoordinator:
    """The only interface application code uses to read or write history.

    Args:
        store:    HistoryStore owned by the composition root.
        identity: Source of the actor recorded on each save.
        unauthenticated_policy: DROP silently ignores saves with no bound
            actor; ERROR raises UnauthenticatedError instead.
    """

    def __init__(
        self,
        store: HistoryStore,
        identity: IdentityProvider,
        unauthenticated_policy: UnauthenticatedPolicy = UnauthenticatedPolicy.DROP,
    ) -> None:
        self._store = store
        self._identity = identity
        self._policy = unauthenticated_policy

    @property
    def store(self) -> HistoryStore:
        return self._store

    def save_state(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        previous_state: Any,
        current_state: Any,
    ) -> str | None:
        """Record a change on behalf of the bound actor.

        Returns the new entry id, or None when the save was dropped because
        nobody is authenticated.

        Raises:
            UnauthenticatedError: no actor is bound and the policy is ERROR.
            SnapshotError:        a snapshot cannot be serialised.
        """
        actor = self._identity.current_actor()
        if actor is None:
            if self._policy is UnauthenticatedPolicy.ERROR:
                raise UnauthenticatedError(f"cannot record {action!r} on {entity_type}/{entity_id}: no actor bound")
            saves_dropped_total.inc()
            _log.debug("save_state_dropped", action=action, entity_type=entity_type, entity_id=entity_id)
            return None

        return self._store.record_change(
            action,
            entity_type,
            entity_id,
            previous_state,
            current_state,
            actor.id or "unknown",
            actor.name or "Unknown User",
        )

    def get_history(self, entity_type: str | None = None, entity_id: str | None = None) -> list[ChangeEntry]:
        return self._store.query_history(entity_type, entity_id)

    def get_entry(self, entry_id: str) -> ChangeEntry | None:
        return self._store.get_entry(entry_id)

    async def rollback(self, entry_id: str, restore: RestoreCallback) -> RollbackResult:
        """Roll back *entry_id* by handing its previous state to *restore*.

        *restore* receives a private copy of the snapshot and may be a plain
        function or a coroutine function.  No lock is held while it runs, so
        it may call back into this coordinator.
        """
        entry = self._store.consume_for_rollback(entry_id)
        if entry is None:
            rollbacks_total.labels(outcome=RollbackOutcome.NOT_FOUND.value).inc()
            return RollbackResult(outcome=RollbackOutcome.NOT_FOUND, entry_id=entry_id)

        try:
            result = restore(clone_snapshot(entry.previous_state, "previous_state"))
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            rollbacks_total.labels(outcome=RollbackOutcome.RESTORE_FAILED.value).inc()
            _log.error(
                "rollback_restore_failed",
                entry_id=entry_id,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                error=str(exc),
            )
            return RollbackResult(
                outcome=RollbackOutcome.RESTORE_FAILED,
                entry_id=entry_id,
                entry=entry,
                error=str(exc),
            )

        rollbacks_total.labels(outcome=RollbackOutcome.COMPLETED.value).inc()
        _log.info(
            "rollback_completed",
            entry_id=entry_id,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
        )
        return RollbackResult(outcome=RollbackOutcome.COMPLETED, entry_id=entry_id, entry=entry)

    def clear_history(self, entity_type: str | None = None) -> int:
        return self._store.clear_history(entity_type)
