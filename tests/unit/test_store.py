"""Unit tests for HistoryStore: capacity, filtering, rollback bookkeeping, clearing."""

from __future__ import annotations

import json
import sys

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from statehistory.history.errors import PersistenceError, SnapshotError
from statehistory.history.slot import MemorySlot
from statehistory.history.snapshot import clone_snapshot
from statehistory.history.store import HistoryStore
from statehistory.models.entries import SYSTEM_ACTOR

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(
    store: HistoryStore,
    action: str = "Update price",
    entity_type: str = "product",
    entity_id: str = "p1",
    previous: object = None,
    current: object = None,
) -> str:
    return store.record_change(
        action,
        entity_type,
        entity_id,
        {"price": 250} if previous is None else previous,
        {"price": 275} if current is None else current,
        "1",
        "Hub Administrator",
    )


class _BrokenSlot:
    """Slot whose writes always fail; reads return a fixed document."""

    def __init__(self, initial: str | None = None) -> None:
        self._initial = initial
        self.write_attempts = 0

    @property
    def name(self) -> str:
        return "broken"

    def read(self) -> str | None:
        return self._initial

    def write(self, data: str) -> None:
        self.write_attempts += 1
        raise PersistenceError("quota exceeded")


class _UnreadableSlot(MemorySlot):
    def read(self) -> str | None:
        raise PersistenceError("disk on fire")


def _nested(depth: int) -> object:
    value: object = 0
    for _ in range(depth):
        value = [value]
    return value


# ---------------------------------------------------------------------------
# record_change
# ---------------------------------------------------------------------------


class TestRecordChange:
    def test_returns_id_of_head_entry(self) -> None:
        store = HistoryStore(MemorySlot())
        entry_id = _record(store)
        history = store.query_history()
        assert len(history) == 1
        assert history[0].id == entry_id
        assert entry_id.startswith("rollback_")

    def test_entry_carries_caller_fields(self) -> None:
        store = HistoryStore(MemorySlot())
        _record(store, action="Update stock", entity_id="prod_001", previous={"stock": 100}, current={"stock": 90})
        entry = store.query_history()[0]
        assert entry.action == "Update stock"
        assert entry.entity_type == "product"
        assert entry.entity_id == "prod_001"
        assert entry.previous_state == {"stock": 100}
        assert entry.current_state == {"stock": 90}
        assert entry.user_id == "1"
        assert entry.user_name == "Hub Administrator"
        assert entry.timestamp.tzinfo is not None

    def test_newest_first(self) -> None:
        store = HistoryStore(MemorySlot())
        first = _record(store, action="Create batch")
        second = _record(store, action="Update batch")
        third = _record(store, action="Delete batch")
        assert [e.id for e in store.query_history()] == [third, second, first]

    def test_ids_are_unique(self) -> None:
        store = HistoryStore(MemorySlot(), max_entries=500)
        ids = {_record(store) for _ in range(300)}
        assert len(ids) == 300

    def test_none_snapshots_allowed(self) -> None:
        store = HistoryStore(MemorySlot())
        store.record_change("Create product", "product", "p9", None, None, "1", "Admin")
        entry = store.query_history()[0]
        assert entry.previous_state is None
        assert entry.current_state is None

    def test_persists_after_each_record(self) -> None:
        slot = MemorySlot()
        store = HistoryStore(slot)
        entry_id = _record(store)
        stored = json.loads(slot.read() or "[]")
        assert [item["id"] for item in stored] == [entry_id]
        assert stored[0]["entityType"] == "product"

    @pytest.mark.parametrize("field", ["action", "entity_type", "entity_id", "user_id", "user_name"])
    def test_empty_identifier_rejected(self, field: str) -> None:
        store = HistoryStore(MemorySlot())
        kwargs = {
            "action": "Update price",
            "entity_type": "product",
            "entity_id": "p1",
            "previous_state": {},
            "current_state": {},
            "user_id": "1",
            "user_name": "Admin",
        }
        kwargs[field] = ""
        with pytest.raises(ValueError, match=field):
            store.record_change(**kwargs)
        assert len(store) == 0

    def test_cyclic_snapshot_rejected_and_history_unchanged(self) -> None:
        slot = MemorySlot()
        store = HistoryStore(slot)
        _record(store)
        persisted = slot.read()

        cyclic: dict[str, object] = {"name": "loop"}
        cyclic["self"] = cyclic
        with pytest.raises(SnapshotError) as excinfo:
            store.record_change("Update name", "product", "p1", {}, cyclic, "1", "Admin")

        assert excinfo.value.which == "current_state"
        assert len(store) == 1
        assert slot.read() == persisted

    def test_unsupported_value_rejected(self) -> None:
        store = HistoryStore(MemorySlot())
        with pytest.raises(SnapshotError):
            store.record_change("Update", "product", "p1", {"when": object()}, {}, "1", "Admin")
        assert len(store) == 0

    def test_deeply_nested_snapshot_is_recorded_whole_or_not_at_all(self) -> None:
        slot = MemorySlot()
        store = HistoryStore(slot)
        _record(store)

        # Start at the deepest snapshot that still clones; the stored document nests it further.
        attempts = 0
        for depth in range(sys.getrecursionlimit() + 100, 0, -1):
            state = _nested(depth)
            try:
                clone_snapshot(state)
            except SnapshotError:
                continue
            before = len(store)
            persisted = slot.read()
            try:
                entry_id = _record(store, previous=state, current=state)
            except SnapshotError:
                assert len(store) == before
                assert slot.read() == persisted
            else:
                assert len(store) == before + 1
                assert entry_id in (slot.read() or "")
            attempts += 1
            if attempts == 5:
                break
        assert attempts == 5

    def test_invalid_capacity_rejected(self) -> None:
        with pytest.raises(ValueError):
            HistoryStore(MemorySlot(), max_entries=0)


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------


class TestCapacity:
    def test_default_capacity_is_100(self) -> None:
        store = HistoryStore(MemorySlot())
        for i in range(120):
            _record(store, action=f"Update {i}")
        assert len(store) == 100
        assert store.query_history()[-1].action == "Update 20"

    def test_eviction_ignores_entity_type(self) -> None:
        store = HistoryStore(MemorySlot(), max_entries=2)
        _record(store, entity_type="system", entity_id="main")
        _record(store, entity_type="product")
        _record(store, entity_type="product")
        assert store.query_history("system") == []

    @given(capacity=st.integers(min_value=1, max_value=15), extra=st.integers(min_value=1, max_value=15))
    @settings(max_examples=40, deadline=None)
    def test_retains_most_recent_insertions(self, capacity: int, extra: int) -> None:
        store = HistoryStore(MemorySlot(), max_entries=capacity)
        ids = [_record(store, action=f"Update {i}") for i in range(capacity + extra)]
        history = store.query_history()
        assert len(history) == capacity
        assert [e.id for e in history] == list(reversed(ids[-capacity:]))


# ---------------------------------------------------------------------------
# Snapshot independence
# ---------------------------------------------------------------------------


class TestSnapshotIndependence:
    def test_mutating_caller_objects_does_not_change_entry(self) -> None:
        store = HistoryStore(MemorySlot())
        previous = {"a": 1}
        current = {"a": 2}
        store.record_change("Update a", "product", "p1", previous, current, "1", "Admin")

        previous["a"] = 100
        current["a"] = 200
        current["b"] = "new"

        entry = store.query_history()[0]
        assert entry.previous_state == {"a": 1}
        assert entry.current_state == {"a": 2}

    def test_mutating_returned_entries_does_not_change_log(self) -> None:
        slot = MemorySlot()
        store = HistoryStore(slot)
        entry_id = store.record_change("Update a", "product", "p1", {"a": 1}, {"a": 2}, "1", "Admin")

        store.query_history()[0].current_state["a"] = 999
        fetched = store.get_entry(entry_id)
        assert fetched is not None
        fetched.previous_state["a"] = 999
        consumed = store.consume_for_rollback(entry_id)
        assert consumed is not None
        consumed.previous_state["b"] = "new"

        original = store.get_entry(entry_id)
        assert original is not None
        assert original.previous_state == {"a": 1}
        assert original.current_state == {"a": 2}
        rollback_entry = store.query_history()[0]
        assert rollback_entry.previous_state == {"a": 2}
        assert rollback_entry.current_state == {"a": 1}

        reloaded = HistoryStore(slot)
        reloaded.load_from_durable_storage()
        assert reloaded.get_entry(entry_id) == original

    @given(
        state=st.recursive(
            st.none() | st.booleans() | st.integers() | st.text(max_size=10),
            lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=5), children, max_size=4),
            max_leaves=12,
        )
    )
    @settings(max_examples=60, deadline=None)
    def test_nested_containers_are_copied(self, state: object) -> None:
        store = HistoryStore(MemorySlot())
        wrapper = {"settings": state}
        store.record_change("Update settings", "system", "main", wrapper, wrapper, "1", "Admin")
        wrapper["settings"] = "replaced"
        entry = store.query_history()[0]
        assert entry.previous_state == {"settings": state}
        assert entry.previous_state is not entry.current_state


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestQueryHistory:
    @pytest.fixture()
    def store(self) -> HistoryStore:
        store = HistoryStore(MemorySlot())
        _record(store, entity_type="product", entity_id="p1", action="Update price")
        _record(store, entity_type="product", entity_id="p2", action="Update stock")
        _record(store, entity_type="system", entity_id="main", action="Enable Maintenance Mode")
        return store

    def test_no_filter_returns_everything(self, store: HistoryStore) -> None:
        assert len(store.query_history()) == 3

    def test_filter_by_type(self, store: HistoryStore) -> None:
        products = store.query_history("product")
        assert [e.entity_id for e in products] == ["p2", "p1"]

    def test_filter_by_type_and_id(self, store: HistoryStore) -> None:
        assert len(store.query_history("product", "p1")) == 1
        assert len(store.query_history("system", "main")) == 1

    def test_unknown_type_returns_empty(self, store: HistoryStore) -> None:
        assert store.query_history("nonexistent") == []

    def test_id_without_type_rejected(self, store: HistoryStore) -> None:
        with pytest.raises(ValueError, match="requires entity_type"):
            store.query_history(entity_id="p1")

    def test_result_is_a_copy_of_the_log(self, store: HistoryStore) -> None:
        result = store.query_history()
        result.clear()
        assert len(store.query_history()) == 3

    def test_get_entry(self, store: HistoryStore) -> None:
        head = store.query_history()[0]
        assert store.get_entry(head.id) == head
        assert store.get_entry("rollback_0_missing") is None


# ---------------------------------------------------------------------------
# consume_for_rollback
# ---------------------------------------------------------------------------


class TestConsumeForRollback:
    def test_records_swapped_entry_and_returns_original(self) -> None:
        store = HistoryStore(MemorySlot())
        original_id = _record(store, action="Update price", previous={"price": 250}, current={"price": 300})

        original = store.consume_for_rollback(original_id)

        assert original is not None
        assert original.id == original_id
        head = store.query_history()[0]
        assert head.id != original_id
        assert head.action == "Rollback: Update price"
        assert head.previous_state == {"price": 300}
        assert head.current_state == {"price": 250}
        assert head.user_id == SYSTEM_ACTOR.id
        assert head.user_name == SYSTEM_ACTOR.name
        assert head.entity_type == original.entity_type
        assert head.entity_id == original.entity_id
        assert head.is_rollback

    def test_unknown_id_records_nothing(self) -> None:
        store = HistoryStore(MemorySlot())
        _record(store)
        assert store.consume_for_rollback("rollback_123_nope") is None
        assert len(store) == 1

    def test_rollback_of_rollback(self) -> None:
        store = HistoryStore(MemorySlot())
        _record(store, action="Update price")
        first_rollback = store.consume_for_rollback(store.query_history()[0].id)
        assert first_rollback is not None
        rollback_entry = store.query_history()[0]
        store.consume_for_rollback(rollback_entry.id)
        assert store.query_history()[0].action == "Rollback: Rollback: Update price"
        assert len(store) == 3

    def test_rollback_entry_subject_to_eviction(self) -> None:
        store = HistoryStore(MemorySlot(), max_entries=1)
        entry_id = _record(store)
        assert store.consume_for_rollback(entry_id) is not None
        history = store.query_history()
        assert len(history) == 1
        assert history[0].action == "Rollback: Update price"


# ---------------------------------------------------------------------------
# clear_history
# ---------------------------------------------------------------------------


class TestClearHistory:
    def test_clear_by_type_keeps_others_in_order(self) -> None:
        store = HistoryStore(MemorySlot())
        _record(store, entity_type="system", entity_id="main", action="first")
        _record(store, entity_type="product")
        _record(store, entity_type="cutting", entity_id="c1", action="second")

        removed = store.clear_history("product")

        assert removed == 1
        assert [e.action for e in store.query_history()] == ["second", "first"]

    def test_clear_all(self) -> None:
        slot = MemorySlot()
        store = HistoryStore(slot)
        _record(store)
        _record(store, entity_type="system", entity_id="main")
        assert store.clear_history() == 2
        assert store.query_history() == []
        assert json.loads(slot.read() or "null") == []

    def test_clear_is_idempotent(self) -> None:
        store = HistoryStore(MemorySlot())
        _record(store)
        store.clear_history()
        assert store.clear_history() == 0
        assert store.query_history() == []

    def test_clear_empty_scope_still_persists(self) -> None:
        slot = MemorySlot()
        store = HistoryStore(slot)
        store.clear_history("product")
        assert slot.read() == "[]"


# ---------------------------------------------------------------------------
# Durable slot interaction
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_write_failure_is_contained(self) -> None:
        slot = _BrokenSlot()
        store = HistoryStore(slot)
        entry_id = _record(store)
        assert store.query_history()[0].id == entry_id
        assert store.clear_history() == 1
        assert slot.write_attempts == 2

    def test_load_round_trip(self) -> None:
        slot = MemorySlot()
        writer = HistoryStore(slot)
        _record(writer, action="Update price", previous={"price": 1}, current={"price": 2})
        _record(writer, entity_type="system", entity_id="main", action="Update System Settings")

        reader = HistoryStore(slot)
        assert reader.load_from_durable_storage() == 2
        assert reader.query_history() == writer.query_history()

    def test_load_trims_to_capacity(self) -> None:
        slot = MemorySlot()
        writer = HistoryStore(slot)
        for i in range(5):
            _record(writer, action=f"Update {i}")

        reader = HistoryStore(slot, max_entries=3)
        assert reader.load_from_durable_storage() == 3
        assert [e.action for e in reader.query_history()] == ["Update 4", "Update 3", "Update 2"]

    def test_load_empty_slot(self) -> None:
        store = HistoryStore(MemorySlot())
        assert store.load_from_durable_storage() == 0

    @pytest.mark.parametrize(
        "document",
        [
            "{not json",
            '{"id": "x"}',
            '[{"id": "x"}]',
            '[{"id": "x", "timestamp": "yesterday", "action": "a", "entityType": "t",'
            ' "entityId": "i", "userId": "u", "userName": "n"}]',
            "[1, 2, 3]",
            "[" * 200_000 + "]" * 200_000,
        ],
        ids=["malformed", "object", "missing-fields", "bad-timestamp", "scalars", "deeply-nested"],
    )
    def test_corrupt_slot_yields_empty_history(self, document: str) -> None:
        store = HistoryStore(MemorySlot(initial=document))
        _record(store)
        assert store.load_from_durable_storage() == 0
        assert store.query_history() == []

    def test_unreadable_slot_yields_empty_history(self) -> None:
        store = HistoryStore(_UnreadableSlot())
        assert store.load_from_durable_storage() == 0
