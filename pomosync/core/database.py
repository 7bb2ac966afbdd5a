"""
Thread-safe SQLite task store for pomosync.

Schema:
    tasks:                     One row per local task, with pomodoro metadata
                               and the paired remote task id (if any).
    pending_remote_deletions:  Remote ids of linked tasks the user deleted
                               locally; consumed by the next sync pass.

`remote_task_id` is unique when set (partial unique index), so a remote
task maps to at most one local task and lookups by remote id are indexed.

Every user-facing mutation refreshes `updated_at`. The sync engine uses
mark_synced() instead, which stamps the remote's own `updated` value so a
freshly reconciled pair compares as "in sync" on the next pass.

Usage:
    store = TaskStore(config.storage.database_path)

    task = store.insert("Draft report", estimated_pomodoros=3, priority="high")
    store.increment_pomodoro(task.id)
    store.delete(task.id)
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from pomosync.core.exceptions import DatabaseError, TaskNotFoundError, ValidationError
from pomosync.tasks.models import Priority, Task


DATABASE_VERSION = 1

# Fields a caller may change through update()
EDITABLE_FIELDS = (
    "name",
    "estimated_pomodoros",
    "completed_pomodoros",
    "is_complete",
    "priority",
    "notes",
)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    estimated_pomodoros INTEGER NOT NULL DEFAULT 1,
    completed_pomodoros INTEGER NOT NULL DEFAULT 0,
    is_complete INTEGER NOT NULL DEFAULT 0,
    priority TEXT NOT NULL DEFAULT 'medium' CHECK (priority IN ('low', 'medium', 'high')),
    remote_task_id TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pending_remote_deletions (
    remote_task_id TEXT PRIMARY KEY,
    deleted_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_remote_task_id
    ON tasks(remote_task_id) WHERE remote_task_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_tasks_updated_at ON tasks(updated_at);
"""


def validate_task_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """
    Validate and normalise task fields before they reach SQL.

    Args:
        fields: Any subset of the task columns.

    Returns:
        A copy with normalised values (stripped name, Priority value,
        integer booleans).

    Raises:
        ValidationError: On an empty name, an estimate below 1, a negative
                         completed count or an unknown priority.
    """
    clean = dict(fields)

    if "name" in clean:
        name = clean["name"]
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Task name must not be empty", details={"field": "name"})
        clean["name"] = name.strip()

    if "estimated_pomodoros" in clean:
        value = clean["estimated_pomodoros"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(
                "Estimated pomodoros must be an integer >= 1",
                details={"field": "estimated_pomodoros", "value": value}
            )

    if "completed_pomodoros" in clean:
        value = clean["completed_pomodoros"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                "Completed pomodoros must be an integer >= 0",
                details={"field": "completed_pomodoros", "value": value}
            )

    if "priority" in clean:
        try:
            clean["priority"] = Priority.parse(clean["priority"]).value
        except ValueError as e:
            raise ValidationError(
                f"Priority must be one of: {', '.join(p.value for p in Priority)}",
                details={"field": "priority", "value": clean["priority"]}
            ) from e

    if "is_complete" in clean:
        clean["is_complete"] = 1 if clean["is_complete"] else 0

    if "notes" in clean and clean["notes"] is not None:
        clean["notes"] = str(clean["notes"])

    return clean


class TaskStore:
    """
    Thread-safe SQLite task store.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        in_memory = str(db_path) == ":memory:"
        if not in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection.

        The connection is created once and reused; sqlite3 errors raised
        inside the block are rolled back and wrapped in DatabaseError.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield self._conn
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise DatabaseError(f"Constraint violation: {e}", details={"path": str(self.db_path)}) from e
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(f"Database operation failed: {e}", details={"path": str(self.db_path)}) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "TaskStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _fetch(self, conn: sqlite3.Connection, task_id: int) -> Task:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise TaskNotFoundError(task_id)
        return Task.from_row(row)

    def _write(self, conn: sqlite3.Connection, task_id: int, values: dict[str, Any]) -> None:
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = conn.execute(
            f"UPDATE tasks SET {assignments} WHERE id = ?",
            (*values.values(), task_id)
        )
        if cursor.rowcount == 0:
            raise TaskNotFoundError(task_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def list_tasks(self, include_complete: bool = True) -> list[Task]:
        """All tasks, incomplete first, then by creation order."""
        query = "SELECT * FROM tasks"
        if not include_complete:
            query += " WHERE is_complete = 0"
        query += " ORDER BY is_complete, id"

        with self._lock:
            with self._get_connection() as conn:
                return [Task.from_row(row) for row in conn.execute(query).fetchall()]

    def get(self, task_id: int) -> Task | None:
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
                return Task.from_row(row) if row else None

    def get_by_remote_id(self, remote_task_id: str) -> Task | None:
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM tasks WHERE remote_task_id = ?", (remote_task_id,)
                ).fetchone()
                return Task.from_row(row) if row else None

    def last_modified(self) -> tuple[int, str | None, int]:
        """
        Cheap change marker: (task count, newest updated_at, pending deletions).

        Any local mutation changes at least one element.
        """
        with self._lock:
            with self._get_connection() as conn:
                count, newest = conn.execute("SELECT COUNT(*), MAX(updated_at) FROM tasks").fetchone()
                pending = conn.execute("SELECT COUNT(*) FROM pending_remote_deletions").fetchone()[0]
                return count, newest, pending

    def stats(self) -> dict[str, int]:
        """Counts for status displays."""
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT
                        COUNT(*) AS total,
                        COALESCE(SUM(is_complete), 0) AS complete,
                        COALESCE(SUM(CASE WHEN remote_task_id IS NULL THEN 1 ELSE 0 END), 0) AS unlinked,
                        COALESCE(SUM(completed_pomodoros), 0) AS pomodoros
                    FROM tasks
                """).fetchone()
                pending = conn.execute("SELECT COUNT(*) FROM pending_remote_deletions").fetchone()[0]

        return {
            "total": row["total"],
            "complete": row["complete"],
            "unlinked": row["unlinked"],
            "pomodoros": row["pomodoros"],
            "pending_deletions": pending,
        }

    # =========================================================================
    # Mutations
    # =========================================================================

    def insert(
        self,
        name: str,
        *,
        estimated_pomodoros: int = 1,
        completed_pomodoros: int = 0,
        is_complete: bool = False,
        priority: Priority | str = Priority.MEDIUM,
        remote_task_id: str | None = None,
        notes: str | None = None,
        updated_at: str | None = None
    ) -> Task:
        """
        Create a task and return it.

        `updated_at` defaults to now; the sync engine passes the remote's
        timestamp when a task is created from a remote one.

        Raises:
            ValidationError: If a field is invalid.
            DatabaseError: If remote_task_id is already linked to another task.
        """
        values = validate_task_fields({
            "name": name,
            "estimated_pomodoros": estimated_pomodoros,
            "completed_pomodoros": completed_pomodoros,
            "is_complete": is_complete,
            "priority": priority,
            "notes": notes,
        })
        now = self._now_iso()

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO tasks (
                        name, estimated_pomodoros, completed_pomodoros, is_complete,
                        priority, remote_task_id, notes, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    values["name"], values["estimated_pomodoros"], values["completed_pomodoros"],
                    values["is_complete"], values["priority"], remote_task_id, values["notes"],
                    now, updated_at or now
                ))
                conn.commit()
                return self._fetch(conn, cursor.lastrowid)

    def update(self, task_id: int, **fields: Any) -> Task:
        """
        Change editable fields of a task and refresh updated_at.

        Raises:
            ValidationError: If a field name is unknown or a value is invalid.
            TaskNotFoundError: If the task does not exist.
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown task field(s): {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)}
            )

        values = validate_task_fields(fields)
        values["updated_at"] = self._now_iso()

        with self._lock:
            with self._get_connection() as conn:
                self._write(conn, task_id, values)
                conn.commit()
                return self._fetch(conn, task_id)

    def set_complete(self, task_id: int, complete: bool = True) -> Task:
        """
        Mark a task complete (all pomodoros done) or reopen it (counter reset).
        """
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        completed = task.estimated_pomodoros if complete else 0
        return self.update(task_id, is_complete=complete, completed_pomodoros=completed)

    def increment_pomodoro(self, task_id: int) -> Task:
        """
        Record one finished pomodoro.

        The task is marked complete once the estimate is reached.
        """
        with self._lock:
            with self._get_connection() as conn:
                task = self._fetch(conn, task_id)
                completed = task.completed_pomodoros + 1
                self._write(conn, task_id, {
                    "completed_pomodoros": completed,
                    "is_complete": 1 if completed >= task.estimated_pomodoros else 0,
                    "updated_at": self._now_iso(),
                })
                conn.commit()
                return self._fetch(conn, task_id)

    def delete(self, task_id: int, *, record_tombstone: bool = True) -> None:
        """
        Delete a task.

        When the task is linked to a remote task and record_tombstone is
        set, its remote id is queued so the next sync deletes it remotely.
        The sync engine passes record_tombstone=False when mirroring a
        remote deletion.
        """
        with self._lock:
            with self._get_connection() as conn:
                task = self._fetch(conn, task_id)
                conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
                if record_tombstone and task.remote_task_id:
                    conn.execute("""
                        INSERT INTO pending_remote_deletions (remote_task_id, deleted_at)
                        VALUES (?, ?)
                        ON CONFLICT(remote_task_id) DO UPDATE SET deleted_at = excluded.deleted_at
                    """, (task.remote_task_id, self._now_iso()))
                conn.commit()

    # =========================================================================
    # Sync bookkeeping
    # =========================================================================

    def mark_synced(
        self,
        task_id: int,
        *,
        remote_task_id: str,
        synced_at: str | None,
        **fields: Any
    ) -> Task:
        """
        Record that a task now matches its remote counterpart.

        Sets the remote link, applies any mirrored fields and stamps
        updated_at with the remote's modification time (now when the
        remote did not report one).

        Raises:
            TaskNotFoundError: If the task does not exist.
            DatabaseError: If remote_task_id is linked to another task.
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown task field(s): {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)}
            )

        values = validate_task_fields(fields)
        values["remote_task_id"] = remote_task_id
        values["updated_at"] = synced_at or self._now_iso()

        with self._lock:
            with self._get_connection() as conn:
                self._write(conn, task_id, values)
                conn.commit()
                return self._fetch(conn, task_id)

    def pending_remote_deletions(self) -> list[str]:
        """Remote ids of linked tasks deleted locally since the last sync."""
        with self._lock:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT remote_task_id FROM pending_remote_deletions ORDER BY deleted_at"
                ).fetchall()
                return [row[0] for row in rows]

    def clear_remote_deletion(self, remote_task_id: str) -> None:
        with self._lock:
            with self._get_connection() as conn:
                conn.execute(
                    "DELETE FROM pending_remote_deletions WHERE remote_task_id = ?",
                    (remote_task_id,)
                )
                conn.commit()

    def clear_remote_links(self) -> int:
        """
        Forget every remote pairing.

        Used when disconnecting from an account for good: linked tasks
        become pending creates again and queued remote deletions are
        dropped. Returns the number of unlinked tasks.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE tasks SET remote_task_id = NULL WHERE remote_task_id IS NOT NULL"
                )
                conn.execute("DELETE FROM pending_remote_deletions")
                conn.commit()
                return cursor.rowcount
