"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class UnauthenticatedPolicy(StrEnum):
    """What save_state does when no actor is bound."""

    DROP = "drop"
    ERROR = "error"


@dataclass
class HistoryConfig:
    """History store configuration."""

    max_entries: int = 100
    unauthenticated_policy: UnauthenticatedPolicy = UnauthenticatedPolicy.DROP


@dataclass
class StorageConfig:
    """Durable slot configuration."""

    persistence_enabled: bool = True
    storage_dir: str = "~/.statehistory"
    storage_key: str = "rollback_history"


@dataclass
class APIConfig:
    """REST API configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class StateHistoryConfig:
    """Top-level configuration."""

    history: HistoryConfig = field(default_factory=HistoryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
