"""Shared fixtures for statehistory integration tests.

Wires a file-backed HistoryStore, a context-bound coordinator and a live
state registry together, seeded with the product and system records the
console edits, so tests can exercise whole save/rollback/restart flows.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from statehistory.history.slot import FileSlot
from statehistory.history.store import HistoryStore
from statehistory.models.entries import Actor
from statehistory.rollback.coordinator import RollbackCoordinator
from statehistory.rollback.identity import ContextIdentityProvider
from statehistory.rollback.live_state import LiveStateRegistry

# ---------------------------------------------------------------------------
# Actors and records
# ---------------------------------------------------------------------------

HUB_ADMIN = Actor(id="1", name="Hub Administrator")
STORE_ADMIN = Actor(id="2", name="Store Administrator")

PRODUCT_ID = "prod_001"
SYSTEM_ID = "main"

_PRODUCT = {
    "id": PRODUCT_ID,
    "name": "Fresh Chicken",
    "price": 250,
    "category": "Poultry",
    "stock": 100,
}

_SYSTEM = {
    "orders": 1250,
    "products": 450,
    "users": 320,
    "settings": {
        "maintenanceMode": False,
        "maxOrdersPerDay": 1000,
        "autoBackup": True,
    },
}


def make_product(**overrides: Any) -> dict[str, Any]:
    """Return a fresh product record with *overrides* applied."""
    product = copy.deepcopy(_PRODUCT)
    product.update(overrides)
    return product


def make_system_state(**setting_overrides: Any) -> dict[str, Any]:
    """Return a fresh system state with settings overrides applied."""
    state = copy.deepcopy(_SYSTEM)
    state["settings"].update(setting_overrides)
    return state


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def slot_dir(tmp_path: Path) -> Path:
    return tmp_path / "history"


@pytest.fixture()
def store(slot_dir: Path) -> HistoryStore:
    store = HistoryStore(FileSlot(slot_dir), max_entries=20)
    store.load_from_durable_storage()
    return store


@pytest.fixture()
def coordinator(store: HistoryStore) -> RollbackCoordinator:
    return RollbackCoordinator(store, ContextIdentityProvider())


@pytest.fixture()
def live_state(coordinator: RollbackCoordinator) -> LiveStateRegistry:
    registry = LiveStateRegistry(coordinator)
    registry.seed("product", PRODUCT_ID, make_product())
    registry.seed("system", SYSTEM_ID, make_system_state())
    return registry
