"""
Data models for pomosync tasks.

Task is the local record (one row of the SQLite store). RemoteTask is the
subset of a Google Tasks resource the sync engine reads. SyncStats
aggregates the outcome of one sync pass.

Remote resource example (Google Tasks API v1):
    {
        "kind": "tasks#task",
        "id": "MTIzNDU2Nzg5",
        "title": "Water plants",
        "status": "completed",
        "notes": "Pomodoros: 2/2 | Priority: low",
        "updated": "2024-05-01T10:00:00.000Z",
        "deleted": false
    }
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Priority(str, Enum):
    """Task priority as stored locally and embedded in remote notes."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any, default: "Priority | None" = None) -> "Priority":
        """
        Convert a raw value to a Priority.

        Matching is case-insensitive. Unknown values return `default`
        when one is given, otherwise raise ValueError.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        if default is not None:
            return default
        raise ValueError(f"Invalid priority: {value!r}")


class RemoteStatus(str, Enum):
    NEEDS_ACTION = "needsAction"
    COMPLETED = "completed"

    @classmethod
    def from_complete(cls, is_complete: bool) -> "RemoteStatus":
        return cls.COMPLETED if is_complete else cls.NEEDS_ACTION


@dataclass(frozen=True)
class Task:
    """
    A local task.

    Attributes:
        id: Local primary key.
        name: Display name, never empty.
        estimated_pomodoros: Planned pomodoro count (>= 1).
        completed_pomodoros: Pomodoros done so far (>= 0).
        is_complete: Completion flag.
        priority: low / medium / high.
        remote_task_id: Paired remote task id, None while the task has
                        never been pushed (a pending create).
        notes: Free-text notes.
        created_at: ISO-8601 UTC creation time.
        updated_at: ISO-8601 UTC time of the last modification; compared
                    against the remote `updated` field during sync.
    """
    id: int
    name: str
    estimated_pomodoros: int = 1
    completed_pomodoros: int = 0
    is_complete: bool = False
    priority: Priority = Priority.MEDIUM
    remote_task_id: str | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.remote_task_id is not None

    @property
    def remote_status(self) -> RemoteStatus:
        return RemoteStatus.from_complete(self.is_complete)

    @classmethod
    def from_row(cls, row: Any) -> "Task":
        """Build a Task from a sqlite3.Row (or any mapping with the column names)."""
        return cls(
            id=row["id"],
            name=row["name"],
            estimated_pomodoros=row["estimated_pomodoros"],
            completed_pomodoros=row["completed_pomodoros"],
            is_complete=bool(row["is_complete"]),
            priority=Priority.parse(row["priority"], default=Priority.MEDIUM),
            remote_task_id=row["remote_task_id"],
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "estimated_pomodoros": self.estimated_pomodoros,
            "completed_pomodoros": self.completed_pomodoros,
            "is_complete": self.is_complete,
            "priority": self.priority.value,
            "remote_task_id": self.remote_task_id,
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class RemoteTask:
    """
    A task as returned by the remote service.

    Attributes:
        id: Remote task id.
        title: Task title.
        status: needsAction or completed.
        notes: Notes field, usually produced by the note codec.
        updated: RFC 3339 time of the last remote modification.
        deleted: True for a tombstone (only listed with showDeleted=true).
    """
    id: str
    title: str = ""
    status: RemoteStatus = RemoteStatus.NEEDS_ACTION
    notes: str | None = None
    updated: str | None = None
    deleted: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status == RemoteStatus.COMPLETED

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteTask":
        """
        Create a RemoteTask from a Google Tasks API resource.

        Unknown status values are read as needsAction.
        """
        raw_status = data.get("status", RemoteStatus.NEEDS_ACTION.value)
        try:
            status = RemoteStatus(raw_status)
        except ValueError:
            status = RemoteStatus.NEEDS_ACTION

        return cls(
            id=data["id"],
            title=data.get("title") or "",
            status=status,
            notes=data.get("notes"),
            updated=data.get("updated"),
            deleted=bool(data.get("deleted", False)),
        )


@dataclass
class SyncStats:
    """
    Counters for one sync pass.

    Attributes:
        created: Tasks created on either side.
        updated: Tasks updated on either side.
        deleted: Tasks deleted on either side.
        conflicts: Pairs that changed on both sides with equal timestamps.
                   Local won; the pair is also counted in `updated`.
        skipped: Tasks whose reconciliation failed and was skipped.
        failures: One description per skipped task.
    """
    created: int = 0
    updated: int = 0
    deleted: int = 0
    conflicts: int = 0
    skipped: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return self.created + self.updated + self.deleted

    def merge(self, other: "SyncStats") -> "SyncStats":
        self.created += other.created
        self.updated += other.updated
        self.deleted += other.deleted
        self.conflicts += other.conflicts
        self.skipped += other.skipped
        self.failures.extend(other.failures)
        return self

    def as_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "conflicts": self.conflicts,
        }

    def __str__(self) -> str:
        text = (
            f"{self.created} created, {self.updated} updated, "
            f"{self.deleted} deleted, {self.conflicts} conflicts"
        )
        if self.skipped:
            text += f", {self.skipped} skipped"
        return text
