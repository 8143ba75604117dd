"""Pydantic request/response models for the REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from statehistory.models.entries import ChangeEntry


class ErrorResponse(BaseModel):
    """Envelope for every 4xx/5xx response."""

    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    entries: int
    max_entries: int


class EntryOut(BaseModel):
    id: str
    timestamp: str
    action: str
    kind: str
    entity_type: str
    entity_id: str
    previous_state: Any = None
    current_state: Any = None
    user_id: str
    user_name: str

    @classmethod
    def from_entry(cls, entry: ChangeEntry) -> EntryOut:
        return cls(
            id=entry.id,
            timestamp=entry.timestamp.isoformat(),
            action=entry.action,
            kind=entry.kind.value,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            previous_state=entry.previous_state,
            current_state=entry.current_state,
            user_id=entry.user_id,
            user_name=entry.user_name,
        )


class HistoryResponse(BaseModel):
    count: int
    entries: list[EntryOut] = Field(default_factory=list)


class SaveChangeRequest(BaseModel):
    action: str = Field(min_length=1, max_length=200)
    entity_type: str = Field(min_length=1, max_length=100)
    entity_id: str = Field(min_length=1, max_length=200)
    previous_state: Any = None
    current_state: Any = None


class SaveChangeResponse(BaseModel):
    recorded: bool
    entry_id: str | None = None


class ClearResponse(BaseModel):
    removed: int
    entity_type: str | None = None


class RollbackResponse(BaseModel):
    outcome: str
    entry_id: str
    action: str
    entity_type: str
    entity_id: str
    restored_state: Any = None


class EntityStateRequest(BaseModel):
    action: str = Field(min_length=1, max_length=200)
    state: Any = None


class EntityStateResponse(BaseModel):
    entity_type: str
    entity_id: str
    state: Any = None
    entry_id: str | None = None
