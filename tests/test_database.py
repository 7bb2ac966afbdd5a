"""Test the SQLite task store"""

import pytest

from pomosync.core.database import TaskStore
from pomosync.core.exceptions import DatabaseError, TaskNotFoundError, ValidationError
from pomosync.tasks.models import Priority
from pomosync.utils import parse_timestamp


OLD = "2024-01-01T00:00:00+00:00"


class TestTaskStoreBasics:
    """Test inserting, reading and listing tasks"""

    def test_insert_defaults(self, store):
        """A new task is incomplete, unlinked and timestamped"""
        task = store.insert("Draft report")

        assert task.id is not None
        assert task.name == "Draft report"
        assert task.estimated_pomodoros == 1
        assert task.completed_pomodoros == 0
        assert task.is_complete is False
        assert task.priority == Priority.MEDIUM
        assert task.remote_task_id is None
        assert task.created_at is not None
        assert task.updated_at == task.created_at

    def test_insert_strips_name_and_parses_priority(self, store):
        task = store.insert("  Draft report ", estimated_pomodoros=3, priority="HIGH")
        assert task.name == "Draft report"
        assert task.priority == Priority.HIGH

    def test_insert_with_remote_timestamp(self, store):
        """Tasks created from remote ones keep the remote time"""
        task = store.insert("Water plants", remote_task_id="g1", updated_at=OLD)
        assert task.updated_at == OLD
        assert store.get_by_remote_id("g1") == task

    def test_get_missing(self, store):
        assert store.get(42) is None
        assert store.get_by_remote_id("nope") is None

    def test_list_orders_incomplete_first(self, store):
        first = store.insert("First")
        second = store.insert("Second")
        store.set_complete(first.id)

        assert [t.name for t in store.list_tasks()] == ["Second", "First"]
        assert [t.id for t in store.list_tasks(include_complete=False)] == [second.id]

    def test_data_survives_reopen(self, temp_dir):
        """Tasks persist across store instances"""
        with TaskStore(temp_dir / "tasks.db") as first:
            first.insert("Persistent", estimated_pomodoros=2)

        with TaskStore(temp_dir / "tasks.db") as second:
            tasks = second.list_tasks()
        assert [(t.name, t.estimated_pomodoros) for t in tasks] == [("Persistent", 2)]

    def test_in_memory_store(self):
        with TaskStore(":memory:") as memory_store:
            memory_store.insert("Scratch")
            assert len(memory_store.list_tasks()) == 1

    def test_stats(self, store):
        done = store.insert("Done", estimated_pomodoros=2)
        store.set_complete(done.id)
        store.insert("Linked", remote_task_id="g1")
        store.insert("Unlinked")

        assert store.stats() == {
            "total": 3,
            "complete": 1,
            "unlinked": 2,
            "pomodoros": 2,
            "pending_deletions": 0,
        }


class TestTaskStoreValidation:
    """Test field validation"""

    @pytest.mark.parametrize("fields", [
        {"name": "   "},
        {"estimated_pomodoros": 0},
        {"completed_pomodoros": -1},
        {"priority": "urgent"},
        {"estimated_pomodoros": True},
    ])
    def test_invalid_update(self, store, fields):
        task = store.insert("Valid")
        with pytest.raises(ValidationError):
            store.update(task.id, **fields)

    def test_unknown_field(self, store):
        task = store.insert("Valid")
        with pytest.raises(ValidationError, match="remote_task_id"):
            store.update(task.id, remote_task_id="g1")

    def test_empty_name_on_insert(self, store):
        with pytest.raises(ValidationError):
            store.insert("")
        assert store.list_tasks() == []

    def test_duplicate_remote_id(self, store):
        """A remote task links to at most one local task"""
        store.insert("One", remote_task_id="g1")
        with pytest.raises(DatabaseError):
            store.insert("Two", remote_task_id="g1")


class TestTaskStoreMutations:
    """Test edits, pomodoro tracking and deletion"""

    def test_update_refreshes_timestamp(self, store):
        task = store.insert("Old name", updated_at=OLD)
        updated = store.update(task.id, name="New name", priority=Priority.LOW)

        assert updated.name == "New name"
        assert updated.priority == Priority.LOW
        assert parse_timestamp(updated.updated_at) > parse_timestamp(OLD)

    def test_update_missing_task(self, store):
        with pytest.raises(TaskNotFoundError) as exc_info:
            store.update(99, name="x")
        assert exc_info.value.task_id == 99

    def test_increment_pomodoro_completes_at_estimate(self, store):
        task = store.insert("Two pomodoros", estimated_pomodoros=2)

        task = store.increment_pomodoro(task.id)
        assert task.completed_pomodoros == 1
        assert task.is_complete is False

        task = store.increment_pomodoro(task.id)
        assert task.completed_pomodoros == 2
        assert task.is_complete is True

    def test_set_complete_and_reopen(self, store):
        task = store.insert("Finish me", estimated_pomodoros=3)

        done = store.set_complete(task.id)
        assert done.is_complete is True
        assert done.completed_pomodoros == 3

        reopened = store.set_complete(task.id, False)
        assert reopened.is_complete is False
        assert reopened.completed_pomodoros == 0

    def test_delete_linked_task_queues_remote_deletion(self, store):
        task = store.insert("Linked", remote_task_id="g1")
        store.delete(task.id)

        assert store.get(task.id) is None
        assert store.pending_remote_deletions() == ["g1"]

        store.clear_remote_deletion("g1")
        assert store.pending_remote_deletions() == []

    def test_delete_unlinked_task(self, store):
        task = store.insert("Local only")
        store.delete(task.id)
        assert store.pending_remote_deletions() == []

    def test_delete_without_tombstone(self, store):
        """Mirroring a remote deletion queues nothing"""
        task = store.insert("Linked", remote_task_id="g1")
        store.delete(task.id, record_tombstone=False)
        assert store.pending_remote_deletions() == []

    def test_delete_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            store.delete(7)

    def test_last_modified_changes(self, store):
        before = store.last_modified()
        task = store.insert("Marker")
        after_insert = store.last_modified()
        store.delete(task.id)

        assert after_insert != before
        assert store.last_modified() != after_insert


class TestTaskStoreSyncBookkeeping:
    """Test the methods used by the sync engine"""

    def test_mark_synced_stamps_remote_time(self, store):
        task = store.insert("Draft report")
        synced = store.mark_synced(task.id, remote_task_id="g1", synced_at="2024-05-01T10:00:00.000Z")

        assert synced.remote_task_id == "g1"
        assert synced.updated_at == "2024-05-01T10:00:00.000Z"

    def test_mark_synced_applies_fields(self, store):
        task = store.insert("Water plants", estimated_pomodoros=2, remote_task_id="g1")
        synced = store.mark_synced(
            task.id,
            remote_task_id="g1",
            synced_at=OLD,
            is_complete=True,
            completed_pomodoros=2,
            priority="low"
        )
        assert synced.is_complete is True
        assert synced.completed_pomodoros == 2
        assert synced.priority == Priority.LOW

    def test_mark_synced_without_remote_time(self, store):
        task = store.insert("x", updated_at=OLD)
        synced = store.mark_synced(task.id, remote_task_id="g1", synced_at=None)
        assert parse_timestamp(synced.updated_at) > parse_timestamp(OLD)

    def test_clear_remote_links(self, store):
        linked = store.insert("Linked", remote_task_id="g1")
        deleted = store.insert("Deleted", remote_task_id="g2")
        store.delete(deleted.id)

        assert store.clear_remote_links() == 1
        assert store.get(linked.id).remote_task_id is None
        assert store.pending_remote_deletions() == []
