"""Core data structures for statehistory."""

from statehistory.models.config import StateHistoryConfig, UnauthenticatedPolicy
from statehistory.models.entries import (
    ROLLBACK_PREFIX,
    SYSTEM_ACTOR,
    ActionKind,
    Actor,
    ChangeEntry,
    RollbackOutcome,
    RollbackResult,
    classify_action,
)

__all__ = [
    "ROLLBACK_PREFIX",
    "SYSTEM_ACTOR",
    "ActionKind",
    "Actor",
    "ChangeEntry",
    "RollbackOutcome",
    "RollbackResult",
    "StateHistoryConfig",
    "UnauthenticatedPolicy",
    "classify_action",
]
