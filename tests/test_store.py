"""Tests for src.data.store — CampStore state, persistence and reconciliation."""

import asyncio
import json
from dataclasses import replace
from datetime import date, datetime

import pytest

from src.adapters.memory_storage import MemoryStorage
from src.data.store import (
    CLEANING_KEY,
    EVENTS_KEY,
    MAINTENANCE_KEY,
    USERS_KEY,
    CampStore,
    reconcile,
)
from src.ports.storage_port import StorageError


FIXED_TODAY = date(2024, 8, 15)
FIXED_NOW = datetime(2024, 8, 15, 9, 30)


def _stored(storage, key):
    return json.loads(storage.get(key))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoad:
    def test_empty_storage_seeds_default_users(self, store, storage):
        names = [u.name for u in store.users]
        assert names == ["Admin User", "Regular User"]
        assert store.users[0].permissions == ["admin"]
        assert store.users[1].permissions == ["read-only"]
        assert len(_stored(storage, USERS_KEY)) == 2

    def test_empty_storage_gives_empty_collections(self, store):
        assert store.events == []
        assert store.maintenance_tasks == []
        assert store.cleaning_tasks == []
        assert store.loaded is True

    def test_existing_users_not_reseeded(self, storage):
        storage.set(USERS_KEY, json.dumps([{"id": "u1", "name": "Ann", "phoneNumber": "+1"}]))
        s = CampStore(storage)
        s.load()
        assert [u.name for u in s.users] == ["Ann"]

    def test_legacy_event_migrated_on_load(self, storage):
        storage.set(EVENTS_KEY, json.dumps([
            {"id": "e1", "title": "Old", "date": "2023-05-01T00:00:00", "createdBy": "Ann"}
        ]))
        s = CampStore(storage)
        s.load()
        event = s.events[0]
        assert event.start_date == event.end_date == date(2023, 5, 1)
        assert event.category == "other"
        assert event.color == "#9c27b0"

    def test_malformed_collection_becomes_empty(self, storage):
        storage.set(EVENTS_KEY, "{broken")
        s = CampStore(storage)
        s.load()
        assert s.events == []

    def test_malformed_users_reseeded(self, storage):
        storage.set(USERS_KEY, "not json")
        s = CampStore(storage)
        s.load()
        assert len(s.users) == 2

    def test_storage_failure_on_read_is_logged(self, caplog):
        class BrokenStorage(MemoryStorage):
            def get(self, key):
                raise StorageError("disk gone")

        s = CampStore(BrokenStorage())
        s.load()
        assert s.events == []
        assert s.users == []
        assert s.loaded is True
        assert "disk gone" in caplog.text

    def test_failed_users_read_does_not_overwrite_stored_users(self):
        stored_users = json.dumps([
            {"id": "u1", "name": "Camp Director", "phoneNumber": "+1", "permissions": ["admin"]}
        ])

        class FlakyStorage(MemoryStorage):
            failures = 1

            def get(self, key):
                if key == USERS_KEY and self.failures:
                    self.failures -= 1
                    raise StorageError("timeout")
                return super().get(key)

            def set(self, key, value):
                assert key != USERS_KEY, "users must not be rewritten after a failed read"
                super().set(key, value)

        flaky = FlakyStorage({USERS_KEY: stored_users})
        s = CampStore(flaky)
        s.load()
        assert s.users == []
        assert [u["name"] for u in _stored(flaky, USERS_KEY)] == ["Camp Director"]

        assert s.sync_from_storage() == ["users"]
        assert [u.name for u in s.users] == ["Camp Director"]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEvents:
    def test_add_event_persists(self, store, storage):
        event = store.add_event("Staff Retreat", date(2024, 8, 10), "Alice",
                                end_date=date(2024, 8, 13), category="retreat")
        assert event.color == "#e91e63"
        assert _stored(storage, EVENTS_KEY)[0]["title"] == "Staff Retreat"
        assert _stored(storage, EVENTS_KEY)[0]["endDate"] == "2024-08-13"

    def test_end_before_start_clamped(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice", end_date=date(2024, 8, 1))
        assert event.end_date == date(2024, 8, 10)

    def test_end_defaults_to_start(self, store):
        event = store.add_event("x", "2024-08-10", "Alice")
        assert event.end_date == event.start_date == date(2024, 8, 10)

    def test_time_of_day_dropped(self, store):
        event = store.add_event("x", datetime(2024, 8, 10, 18, 45), "Alice")
        assert event.start_date == date(2024, 8, 10)

    def test_explicit_color_kept(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice", category="camp", color="#123456")
        assert event.color == "#123456"

    def test_empty_title_rejected(self, store):
        with pytest.raises(ValueError):
            store.add_event("  ", date(2024, 8, 10), "Alice")

    def test_unknown_category_rejected(self, store):
        with pytest.raises(ValueError):
            store.add_event("x", date(2024, 8, 10), "Alice", category="party")

    def test_ids_are_unique(self, store):
        a = store.add_event("a", date(2024, 8, 10), "Alice")
        b = store.add_event("b", date(2024, 8, 10), "Alice")
        assert a.id != b.id

    def test_update_event_replaces_fields(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        assert store.update_event(replace(event, title="renamed")) is True
        assert store.get_event(event.id).title == "renamed"

    def test_update_event_clamps_end(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        store.update_event(replace(event, end_date=date(2024, 8, 1)))
        assert store.get_event(event.id).end_date == date(2024, 8, 10)

    def test_update_unknown_event_is_noop(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        assert store.update_event(replace(event, id="missing")) is False
        assert len(store.events) == 1

    def test_delete_by_creator(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        assert store.delete_event(event.id, "Alice") is True
        assert store.events == []

    def test_delete_by_other_user_ignored(self, store, storage):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        before = storage.get(EVENTS_KEY)
        assert store.delete_event(event.id, "Bob") is False
        assert [e.id for e in store.events] == [event.id]
        assert storage.get(EVENTS_KEY) == before

    def test_delete_without_actor_is_unconditional(self, store):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        assert store.delete_event(event.id) is True

    def test_delete_unknown_id(self, store):
        assert store.delete_event("missing") is False


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class TestMaintenance:
    def test_add_stamps_created_at(self, store, storage):
        task = store.add_maintenance_task("Fix roof", priority="high")
        assert task.created_at == FIXED_NOW
        assert task.status == "pending"
        assert _stored(storage, MAINTENANCE_KEY)[0]["priority"] == "high"

    def test_photo_limit(self, store):
        with pytest.raises(ValueError):
            store.add_maintenance_task("Fix", photos=["p"] * 6)
        task = store.add_maintenance_task("Fix", photos=["p"] * 5)
        assert len(task.photos) == 5

    def test_invalid_priority(self, store):
        with pytest.raises(ValueError):
            store.add_maintenance_task("Fix", priority="urgent")

    def test_update_keeps_original_created_at(self, store):
        task = store.add_maintenance_task("Fix")
        store.update_maintenance_task(
            replace(task, title="Fix now", created_at=datetime(2000, 1, 1))
        )
        stored = store.get_maintenance_task(task.id)
        assert stored.title == "Fix now"
        assert stored.created_at == FIXED_NOW

    def test_set_status(self, store):
        task = store.add_maintenance_task("Fix")
        updated = store.set_maintenance_status(task.id, "completed")
        assert updated.status == "completed"
        assert store.get_maintenance_task(task.id).status == "completed"

    def test_set_status_unknown_id(self, store):
        assert store.set_maintenance_status("missing", "completed") is None

    def test_assign_and_unassign(self, store, regular):
        task = store.add_maintenance_task("Fix")
        assert store.assign_maintenance_task(task.id, regular.id).assigned_to == regular.id
        assert store.assign_maintenance_task(task.id, None).assigned_to is None

    def test_delete(self, store):
        task = store.add_maintenance_task("Fix")
        assert store.delete_maintenance_task(task.id).id == task.id
        assert store.maintenance_tasks == []
        assert store.delete_maintenance_task(task.id) is None


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


class TestCleaning:
    def test_add_defaults_unclean(self, store, storage):
        task = store.add_cleaning_task("Kitchen")
        assert task.status == "unclean"
        assert task.last_cleaned is None
        assert _stored(storage, CLEANING_KEY)[0]["area"] == "Kitchen"

    def test_toggle_to_clean_stamps_today(self, store):
        task = store.add_cleaning_task("Kitchen")
        updated = store.toggle_clean_status(task.id)
        assert updated.status == "clean"
        assert updated.last_cleaned == FIXED_TODAY

    def test_toggle_back_keeps_last_cleaned(self, store):
        task = store.add_cleaning_task("Kitchen")
        store.toggle_clean_status(task.id)
        updated = store.toggle_clean_status(task.id)
        assert updated.status == "unclean"
        assert updated.last_cleaned == FIXED_TODAY

    def test_toggle_unknown(self, store):
        assert store.toggle_clean_status("missing") is None

    def test_assign_and_delete(self, store, regular):
        task = store.add_cleaning_task("Bathrooms")
        assert store.assign_cleaning_task(task.id, regular.id).assigned_to == regular.id
        assert store.delete_cleaning_task(task.id).area == "Bathrooms"
        assert store.cleaning_tasks == []


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_add_user_has_no_credential(self, store, storage):
        user = store.add_user("Carol", "+15550000001", ["maintenance"])
        assert user.password_set is False
        assert user.temporary_code is None
        assert any(u["name"] == "Carol" for u in _stored(storage, USERS_KEY))

    def test_find_by_phone(self, store):
        user = store.add_user("Carol", "+15550000001")
        assert store.find_user_by_phone("+15550000001").id == user.id
        assert store.find_user_by_phone("+19999999999") is None

    def test_invalid_permission_rejected(self, store):
        with pytest.raises(ValueError):
            store.add_user("Carol", "+15550000001", ["superuser"])

    def test_set_temporary_code(self, store, regular):
        assert store.set_temporary_code(regular.id, "123456").temporary_code == "123456"
        assert store.get_user(regular.id).temporary_code == "123456"

    def test_update_permissions(self, store, regular):
        store.update_user_permissions(regular.id, ["chef", "cleaning"])
        assert store.get_user(regular.id).permissions == ["chef", "cleaning"]

    def test_delete_user(self, store, regular):
        store.delete_user(regular.id)
        assert store.get_user(regular.id) is None


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_none_keeps_current(self):
        current = [1, 2]
        assert reconcile(current, None) is current

    def test_loaded_replaces_wholesale(self):
        assert reconcile([1, 2], [3]) == [3]

    def test_empty_loaded_replaces(self):
        assert reconcile([1, 2], []) == []


class TestSync:
    def test_second_store_sees_first_stores_writes(self, store, storage):
        other = CampStore(storage)
        other.load()
        event = store.add_event("Camp week", date(2024, 7, 1), "Alice", category="camp")
        assert other.events == []
        replaced = other.sync_from_storage()
        assert "events" in replaced
        assert [e.id for e in other.events] == [event.id]

    def test_invalid_content_keeps_current_state(self, store, storage):
        event = store.add_event("x", date(2024, 8, 10), "Alice")
        storage.set(EVENTS_KEY, "[{broken")
        replaced = store.sync_from_storage()
        assert "events" not in replaced
        assert [e.id for e in store.events] == [event.id]

    def test_absent_key_keeps_current_state(self, store, storage):
        store.add_event("x", date(2024, 8, 10), "Alice")
        storage.remove(EVENTS_KEY)
        store.sync_from_storage()
        assert len(store.events) == 1

    def test_listeners_notified_on_change_and_reload(self, store, storage):
        seen = []
        store.add_listener(seen.append)
        store.add_cleaning_task("Kitchen")
        assert seen == ["cleaning"]

        other = CampStore(storage)
        other.load()
        other.add_cleaning_task("Porch")
        assert store.sync_from_storage() == ["cleaning"]
        assert seen == ["cleaning", "cleaning"]

    def test_unchanged_poll_notifies_nobody(self, store):
        store.add_event("x", date(2024, 8, 10), "Alice")
        seen = []
        store.add_listener(seen.append)
        assert store.sync_from_storage() == []
        assert seen == []

    def test_storage_failure_during_poll_keeps_state(self, store):
        store.add_event("x", date(2024, 8, 10), "Alice")

        def broken_get(key):
            raise StorageError("disk gone")

        store.storage.get = broken_get
        assert store.sync_from_storage() == []
        assert len(store.events) == 1

    def test_failing_listener_does_not_break_mutation(self, store):
        def boom(name):
            raise RuntimeError("listener broke")

        store.add_listener(boom)
        store.add_cleaning_task("Kitchen")
        assert len(store.cleaning_tasks) == 1

    def test_round_trip_through_second_store(self, store, storage):
        store.add_event("Retreat", date(2024, 8, 10), "Alice", end_date=date(2024, 8, 13),
                        category="retreat", arrival_time="15:00", catering_needed=True,
                        catering_notes="Vegan")
        store.add_maintenance_task("Fix", priority="low", due_date=date(2024, 9, 1))
        store.add_cleaning_task("Kitchen", status="clean")
        other = CampStore(storage)
        other.load()
        assert other.events == store.events
        assert other.maintenance_tasks == store.maintenance_tasks
        assert other.cleaning_tasks == store.cleaning_tasks
        assert other.users == store.users


class TestAsyncLifecycle:
    @pytest.mark.asyncio
    async def test_sync_loop_picks_up_external_writes(self, storage):
        writer = CampStore(storage)
        writer.load()
        reader = CampStore(storage, sync_interval=0.01)
        reader.load()
        await reader.start_sync()
        assert reader.syncing is True

        writer.add_cleaning_task("Porch")
        await asyncio.sleep(0.05)
        assert [t.area for t in reader.cleaning_tasks] == ["Porch"]

        await reader.close()
        assert reader.syncing is False

    @pytest.mark.asyncio
    async def test_start_sync_is_idempotent(self, storage):
        s = CampStore(storage, sync_interval=10)
        s.load()
        await s.start_sync()
        first = s._sync_task
        await s.start_sync()
        assert s._sync_task is first
        await s.close()

    @pytest.mark.asyncio
    async def test_debounced_write_lands_after_delay(self, storage):
        s = CampStore(storage, write_delay=0.02)
        s.load()
        s.add_cleaning_task("Kitchen")
        assert storage.get(CLEANING_KEY) is None
        assert s.has_pending_writes is True
        await asyncio.sleep(0.06)
        assert _stored(storage, CLEANING_KEY)[0]["area"] == "Kitchen"
        assert s.has_pending_writes is False

    @pytest.mark.asyncio
    async def test_close_flushes_pending_writes(self, storage):
        s = CampStore(storage, write_delay=10)
        s.load()
        s.add_cleaning_task("Kitchen")
        await s.close()
        assert _stored(storage, CLEANING_KEY)[0]["area"] == "Kitchen"

    def test_write_delay_without_loop_writes_immediately(self, storage):
        s = CampStore(storage, write_delay=10)
        s.load()
        s.add_cleaning_task("Kitchen")
        assert storage.get(CLEANING_KEY) is not None

    def test_write_failure_leaves_collection_dirty(self):
        class ReadOnlyStorage(MemoryStorage):
            def set(self, key, value):
                raise StorageError("read-only")

        s = CampStore(ReadOnlyStorage())
        s.load()
        s.add_cleaning_task("Kitchen")
        assert len(s.cleaning_tasks) == 1
        assert s.has_pending_writes is True
