"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from statehistory.models.config import (
    APIConfig,
    HistoryConfig,
    LogConfig,
    StateHistoryConfig,
    StorageConfig,
    UnauthenticatedPolicy,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"STATEHISTORY_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_storage_key(value: str) -> str:
    if not re.match(r"^[A-Za-z0-9_.\-]+$", value):
        raise ValueError(f"Invalid storage key: {value!r}")
    return value


def _validate_policy(value: str) -> UnauthenticatedPolicy:
    try:
        return UnauthenticatedPolicy(value.lower())
    except ValueError:
        valid = {p.value for p in UnauthenticatedPolicy}
        raise ValueError(f"Invalid unauthenticated policy: {value}. Must be one of {valid}") from None


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> StateHistoryConfig:
    """Load configuration from STATEHISTORY_* environment variables."""
    return StateHistoryConfig(
        history=HistoryConfig(
            max_entries=_env_int("MAX_ENTRIES", 100, min_val=1, max_val=10_000),
            unauthenticated_policy=_validate_policy(_env("UNAUTHENTICATED_POLICY", "drop")),
        ),
        storage=StorageConfig(
            persistence_enabled=_env_bool("PERSISTENCE_ENABLED", True),
            storage_dir=_env("STORAGE_DIR", "~/.statehistory"),
            storage_key=_validate_storage_key(_env("STORAGE_KEY", "rollback_history")),
        ),
        api=APIConfig(
            host=_env("API_HOST", "127.0.0.1"),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
