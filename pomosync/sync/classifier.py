"""
Change classifier: decide what to do with one local/remote pairing.

The decision table, evaluated top to bottom:

    local   remote             extra               action
    -----   ----------------   -----------------   -------------
    None    live               locally deleted     delete_remote
    None    live                                   create_local
    None    tombstone / None                       noop
    new     any                                    create_remote
    paired  tombstone / None                       delete_local
    paired  live               remote newer        update_local
    paired  live               content differs     update_remote
    paired  live               local newer and     update_remote
                               notes out of date
    paired  live                                   noop

"new" means the local task has no remote id yet. A remote deletion always
wins over local edits. On equal timestamps local wins; if the content
differs as well the decision is flagged as a conflict. Pomodoro counts and
priority are pushed only when the local task is strictly newer, since the
remote side cannot edit them directly.
"""

from dataclasses import dataclass
from enum import Enum

from pomosync.sync.notes import encode
from pomosync.tasks.models import RemoteTask, Task
from pomosync.utils import parse_timestamp


class Action(str, Enum):
    CREATE_LOCAL = "create_local"
    CREATE_REMOTE = "create_remote"
    UPDATE_LOCAL = "update_local"
    UPDATE_REMOTE = "update_remote"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"
    NOOP = "noop"

    @property
    def side(self) -> str | None:
        """Which store the action mutates: 'local', 'remote' or None for noop."""
        if self is Action.NOOP:
            return None
        return self.value.split("_", 1)[1]


@dataclass(frozen=True)
class Decision:
    action: Action
    conflict: bool = False


NOOP = Decision(Action.NOOP)


def content_differs(local: Task, remote: RemoteTask) -> bool:
    """
    Compare the fields both sides can represent natively.

    Pomodoro counts and priority live inside the remote notes and are not
    compared here.
    """
    return local.name != remote.title.strip() or local.is_complete != remote.is_completed


def notes_out_of_date(local: Task, remote: RemoteTask) -> bool:
    """True when the remote notes do not carry the local task's current metadata."""
    return (remote.notes or "") != encode(local)


def classify(
    local: Task | None,
    remote: RemoteTask | None,
    *,
    locally_deleted: bool = False
) -> Decision:
    """
    Classify one pairing.

    Args:
        local: The local task, or None when no local task references the remote one.
        remote: The remote task (possibly a tombstone), or None when the
                remote listing has no such id.
        locally_deleted: The user deleted the local counterpart since the
                         last pass (only meaningful with local=None).
    """
    remote_live = remote is not None and not remote.deleted

    if local is None:
        if not remote_live:
            return NOOP
        if locally_deleted:
            return Decision(Action.DELETE_REMOTE)
        return Decision(Action.CREATE_LOCAL)

    if local.remote_task_id is None:
        return Decision(Action.CREATE_REMOTE)

    if not remote_live:
        return Decision(Action.DELETE_LOCAL)

    remote_time = parse_timestamp(remote.updated)
    local_time = parse_timestamp(local.updated_at)

    if remote_time > local_time:
        return Decision(Action.UPDATE_LOCAL)

    if content_differs(local, remote):
        return Decision(Action.UPDATE_REMOTE, conflict=remote_time == local_time)

    if local_time > remote_time and notes_out_of_date(local, remote):
        return Decision(Action.UPDATE_REMOTE)

    return NOOP
