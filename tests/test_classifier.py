"""Test the change classifier decision table"""

from pomosync.sync.classifier import Action, Decision, NOOP, classify, content_differs
from pomosync.sync.notes import encode
from pomosync.tasks.models import Priority, RemoteStatus, RemoteTask, Task


EARLY = "2024-05-01T10:00:00.000Z"
LATE = "2024-05-01T12:00:00.000Z"


def local_task(**overrides):
    values = dict(id=1, name="Water plants", remote_task_id="g1", updated_at="2024-05-01T10:00:00+00:00")
    values.update(overrides)
    return Task(**values)


def remote_task(**overrides):
    values = dict(id="g1", title="Water plants", updated=EARLY)
    values.update(overrides)
    if "notes" not in overrides:
        values["notes"] = encode(local_task())
    return RemoteTask(**values)


class TestUnpairedRemote:
    """Remote tasks with no local counterpart"""

    def test_new_remote_task_is_created_locally(self):
        assert classify(None, remote_task()) == Decision(Action.CREATE_LOCAL)

    def test_locally_deleted_task_is_deleted_remotely(self):
        """A pending local deletion wins over recreating the task"""
        assert classify(None, remote_task(), locally_deleted=True) == Decision(Action.DELETE_REMOTE)

    def test_tombstone_without_local_task(self):
        assert classify(None, remote_task(deleted=True)) == NOOP
        assert classify(None, remote_task(deleted=True), locally_deleted=True) == NOOP

    def test_nothing_on_either_side(self):
        assert classify(None, None) == NOOP


class TestLocalTasks:
    """Local tasks, linked or not"""

    def test_unlinked_task_is_created_remotely(self):
        assert classify(local_task(remote_task_id=None), None) == Decision(Action.CREATE_REMOTE)

    def test_remote_tombstone_deletes_local(self):
        """Remote deletion wins even over newer local edits"""
        local = local_task(updated_at="2030-01-01T00:00:00+00:00")
        assert classify(local, remote_task(deleted=True)) == Decision(Action.DELETE_LOCAL)

    def test_missing_remote_deletes_local(self):
        assert classify(local_task(), None) == Decision(Action.DELETE_LOCAL)

    def test_remote_newer_updates_local(self):
        assert classify(local_task(), remote_task(updated=LATE, title="Water cactus")) == \
            Decision(Action.UPDATE_LOCAL)

    def test_local_newer_with_changes_updates_remote(self):
        local = local_task(name="Water all plants", updated_at="2024-05-01T12:00:00+00:00")
        assert classify(local, remote_task()) == Decision(Action.UPDATE_REMOTE)

    def test_equal_timestamps_with_changes_is_conflict(self):
        """Local wins ties and the decision is flagged"""
        decision = classify(local_task(name="A"), remote_task(title="B"))
        assert decision == Decision(Action.UPDATE_REMOTE, conflict=True)

    def test_completion_difference_counts_as_change(self):
        remote = remote_task(status=RemoteStatus.COMPLETED)
        assert classify(local_task(), remote).action is Action.UPDATE_REMOTE

    def test_in_sync_pair_is_noop(self):
        assert classify(local_task(), remote_task()) == NOOP

    def test_local_metadata_change_is_pushed(self):
        """Pomodoro progress reaches the remote notes when local is newer"""
        local = local_task(completed_pomodoros=1, updated_at="2024-05-01T11:00:00+00:00")
        assert classify(local, remote_task()) == Decision(Action.UPDATE_REMOTE)

    def test_metadata_difference_alone_with_equal_timestamps(self):
        """Without newer local time, differing notes do not trigger a push"""
        local = local_task(priority=Priority.HIGH)
        assert classify(local, remote_task()) == NOOP

    def test_timestamp_formats_are_normalised(self):
        """'Z' and '+00:00' denote the same instant"""
        local = local_task(updated_at="2024-05-01T12:00:00+00:00")
        assert classify(local, remote_task(updated=LATE)) == NOOP


class TestHelpers:
    def test_content_differs_ignores_surrounding_whitespace(self):
        assert not content_differs(local_task(), remote_task(title="  Water plants "))

    def test_action_side(self):
        assert Action.CREATE_LOCAL.side == "local"
        assert Action.DELETE_REMOTE.side == "remote"
        assert Action.NOOP.side is None
