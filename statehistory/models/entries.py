"""History entry data structures and enumerations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

ROLLBACK_PREFIX = "Rollback: "


class ActionKind(StrEnum):
    """Coarse category of an action label, used for presentation."""

    DELETE = "delete"
    CREATE = "create"
    UPDATE = "update"
    ROLLBACK = "rollback"
    OTHER = "other"


class RollbackOutcome(StrEnum):
    """Terminal state of a single rollback invocation."""

    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    RESTORE_FAILED = "restore_failed"


def classify_action(action: str) -> ActionKind:
    """Map an action label onto an ActionKind.

    Checks are substring matches on the lower-cased label, in priority order,
    so "Rollback: Delete batch" classifies as DELETE.
    """
    lowered = action.lower()
    for kind in (ActionKind.DELETE, ActionKind.CREATE, ActionKind.UPDATE, ActionKind.ROLLBACK):
        if kind.value in lowered:
            return kind
    return ActionKind.OTHER


@dataclass(frozen=True)
class Actor:
    """Identity responsible for a recorded change."""

    id: str
    name: str


SYSTEM_ACTOR = Actor(id="system", name="System Rollback")


@dataclass(frozen=True)
class ChangeEntry:
    """One recorded snapshot pair with metadata.

    Produced only by HistoryStore.record_change.  Snapshots are private deep
    copies owned by the store; treat them as read-only.
    """

    id: str
    timestamp: datetime
    action: str
    entity_type: str
    entity_id: str
    previous_state: Any
    current_state: Any
    user_id: str
    user_name: str

    @property
    def kind(self) -> ActionKind:
        return classify_action(self.action)

    @property
    def is_rollback(self) -> bool:
        return self.action.startswith(ROLLBACK_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the durable wire form (camelCase keys, ISO timestamp)."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "previousState": self.previous_state,
            "currentState": self.current_state,
            "userId": self.user_id,
            "userName": self.user_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeEntry:
        """Inverse of to_dict.

        Raises:
            KeyError:   a required key is missing.
            ValueError: the timestamp is not ISO-8601.
        """
        return cls(
            id=str(data["id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            action=str(data["action"]),
            entity_type=str(data["entityType"]),
            entity_id=str(data["entityId"]),
            previous_state=data.get("previousState"),
            current_state=data.get("currentState"),
            user_id=str(data["userId"]),
            user_name=str(data["userName"]),
        )


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of RollbackCoordinator.rollback.

    Truthy only when the restore completed, so callers that only care about
    success can keep treating it as a boolean.
    """

    outcome: RollbackOutcome
    entry_id: str
    entry: ChangeEntry | None = None
    error: str = ""

    @property
    def success(self) -> bool:
        return self.outcome is RollbackOutcome.COMPLETED

    def __bool__(self) -> bool:
        return self.success
