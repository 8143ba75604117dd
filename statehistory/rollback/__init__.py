"""Rollback package: coordinator, identity binding and restore targets."""

from statehistory.rollback.coordinator import RestoreCallback, RollbackCoordinator
from statehistory.rollback.identity import (
    ContextIdentityProvider,
    IdentityProvider,
    StaticIdentityProvider,
    bind_actor,
)
from statehistory.rollback.live_state import LiveStateRegistry
from statehistory.rollback.tracker import EntityTracker

__all__ = [
    "ContextIdentityProvider",
    "EntityTracker",
    "IdentityProvider",
    "LiveStateRegistry",
    "RestoreCallback",
    "RollbackCoordinator",
    "StaticIdentityProvider",
    "bind_actor",
]
