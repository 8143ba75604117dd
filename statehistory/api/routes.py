"""Route handlers for the statehistory REST API.

Handlers read their collaborators from ``request.app.state`` (populated by
create_app).  The acting user is taken from the ``X-Actor-Id`` and
``X-Actor-Name`` headers and bound for the duration of the handler.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Header, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from statehistory.api.schemas import (
    ClearResponse,
    EntityStateRequest,
    EntityStateResponse,
    EntryOut,
    HealthResponse,
    HistoryResponse,
    RollbackResponse,
    SaveChangeRequest,
    SaveChangeResponse,
)
from statehistory.models.entries import Actor, RollbackOutcome
from statehistory.rollback.coordinator import RollbackCoordinator
from statehistory.rollback.identity import bind_actor
from statehistory.rollback.live_state import LiveStateRegistry

router = APIRouter()


class APIError(Exception):
    """Raised by handlers; rendered as the ErrorResponse envelope."""

    def __init__(self, status_code: int, error: str, detail: str = "") -> None:
        super().__init__(detail or error)
        self.status_code = status_code
        self.error = error
        self.detail = detail


def _coordinator(request: Request) -> RollbackCoordinator:
    return request.app.state.coordinator  # type: ignore[no-any-return]


def _live_state(request: Request) -> LiveStateRegistry:
    return request.app.state.live_state  # type: ignore[no-any-return]


def _actor(actor_id: str | None, actor_name: str | None) -> Actor | None:
    if not actor_id:
        return None
    return Actor(id=actor_id, name=actor_name or actor_id)


ActorIdHeader = Annotated[str | None, Header(alias="X-Actor-Id")]
ActorNameHeader = Annotated[str | None, Header(alias="X-Actor-Name")]


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from statehistory import __version__

    store = _coordinator(request).store
    return HealthResponse(version=__version__, entries=len(store), max_entries=store.max_entries)


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/history", response_model=HistoryResponse)
async def list_history(
    request: Request,
    entity_type: Annotated[str | None, Query(max_length=100)] = None,
    entity_id: Annotated[str | None, Query(max_length=200)] = None,
) -> HistoryResponse:
    if entity_id and not entity_type:
        raise APIError(400, "INVALID_FILTER", "entity_id filter requires entity_type")
    entries = _coordinator(request).get_history(entity_type, entity_id)
    return HistoryResponse(count=len(entries), entries=[EntryOut.from_entry(e) for e in entries])


@router.get("/history/{entry_id}", response_model=EntryOut)
async def get_entry(request: Request, entry_id: str) -> EntryOut:
    entry = _coordinator(request).get_entry(entry_id)
    if entry is None:
        raise APIError(404, "ENTRY_NOT_FOUND", f"No history entry with id {entry_id!r}")
    return EntryOut.from_entry(entry)


@router.post("/history", response_model=SaveChangeResponse)
async def save_change(
    request: Request,
    response: Response,
    body: SaveChangeRequest,
    x_actor_id: ActorIdHeader = None,
    x_actor_name: ActorNameHeader = None,
) -> SaveChangeResponse:
    with bind_actor(_actor(x_actor_id, x_actor_name)):
        entry_id = _coordinator(request).save_state(
            body.action,
            body.entity_type,
            body.entity_id,
            body.previous_state,
            body.current_state,
        )
    if entry_id is None:
        response.status_code = status.HTTP_202_ACCEPTED
        return SaveChangeResponse(recorded=False)
    response.status_code = status.HTTP_201_CREATED
    return SaveChangeResponse(recorded=True, entry_id=entry_id)


@router.delete("/history", response_model=ClearResponse)
async def clear_history(
    request: Request,
    entity_type: Annotated[str | None, Query(min_length=1, max_length=100)] = None,
) -> ClearResponse:
    removed = _coordinator(request).clear_history(entity_type)
    return ClearResponse(removed=removed, entity_type=entity_type)


@router.post("/history/{entry_id}/rollback", response_model=RollbackResponse)
async def rollback_entry(request: Request, entry_id: str) -> RollbackResponse:
    coordinator = _coordinator(request)
    live_state = _live_state(request)

    entry = coordinator.get_entry(entry_id)
    if entry is None:
        raise APIError(404, "ENTRY_NOT_FOUND", f"No history entry with id {entry_id!r}")

    result = await coordinator.rollback(entry_id, live_state.restorer(entry.entity_type, entry.entity_id))
    if result.outcome is RollbackOutcome.NOT_FOUND:
        raise APIError(404, "ENTRY_NOT_FOUND", f"No history entry with id {entry_id!r}")
    if result.outcome is RollbackOutcome.RESTORE_FAILED:
        raise APIError(409, "ROLLBACK_RESTORE_FAILED", result.error)

    return RollbackResponse(
        outcome=result.outcome.value,
        entry_id=entry_id,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        restored_state=live_state.get(entry.entity_type, entry.entity_id),
    )


@router.get("/entities/{entity_type}/{entity_id}", response_model=EntityStateResponse)
async def get_entity(request: Request, entity_type: str, entity_id: str) -> EntityStateResponse:
    live_state = _live_state(request)
    if (entity_type, entity_id) not in live_state.entities():
        raise APIError(404, "ENTITY_NOT_FOUND", f"No live state for {entity_type}/{entity_id}")
    return EntityStateResponse(
        entity_type=entity_type,
        entity_id=entity_id,
        state=live_state.get(entity_type, entity_id),
    )


@router.put("/entities/{entity_type}/{entity_id}", response_model=EntityStateResponse)
async def put_entity(
    request: Request,
    entity_type: str,
    entity_id: str,
    body: EntityStateRequest,
    x_actor_id: ActorIdHeader = None,
    x_actor_name: ActorNameHeader = None,
) -> EntityStateResponse:
    live_state = _live_state(request)
    with bind_actor(_actor(x_actor_id, x_actor_name)):
        entry_id = live_state.apply(entity_type, entity_id, body.state, body.action)
    return EntityStateResponse(
        entity_type=entity_type,
        entity_id=entity_id,
        state=live_state.get(entity_type, entity_id),
        entry_id=entry_id,
    )
