"""Per-entity convenience wrapper around RollbackCoordinator.save_state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from statehistory.rollback.coordinator import RollbackCoordinator

if TYPE_CHECKING:
    from statehistory.models.entries import ChangeEntry


class EntityTracker:
    """Saves changes for one fixed ``(entity_type, entity_id)``.

    Callers that edit a single record (a product form, the system settings
    panel) hold one of these instead of repeating the entity identity on
    every save.
    """

    def __init__(self, coordinator: RollbackCoordinator, entity_type: str, entity_id: str) -> None:
        self._coordinator = coordinator
        self.entity_type = entity_type
        self.entity_id = entity_id

    def save_change(self, action: str, previous_state: Any, new_state: Any) -> str | None:
        return self._coordinator.save_state(action, self.entity_type, self.entity_id, previous_state, new_state)

    def history(self) -> list[ChangeEntry]:
        return self._coordinator.get_history(self.entity_type, self.entity_id)
