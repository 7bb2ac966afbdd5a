"""Test configuration and fixtures"""

import tempfile
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import pytest

from pomosync.core.config import Config, LoggingConfig, RemoteConfig, SecurityConfig, StorageConfig
from pomosync.core.database import TaskStore
from pomosync.core.exceptions import RemoteTaskError
from pomosync.tasks.models import RemoteStatus, RemoteTask
from pomosync.utils import utc_now


class FakeRemoteClient:
    """In-memory stand-in for RemoteTaskClient"""

    def __init__(self):
        self.tasks: dict[str, RemoteTask] = {}
        self.calls: list[tuple[str, str]] = []
        self.tokens_seen: list[str] = []
        self.errors: dict[tuple[str, str], Exception] = {}
        self._next_id = 1
        self._last_stamp = None

    def stamp(self) -> str:
        """Strictly increasing RFC 3339 timestamp, like the remote `updated` field"""
        now = utc_now()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now.strftime("%Y-%m-%dT%H:%M:%S.%fZ")

    def add(self, task_id, title, *, status=RemoteStatus.NEEDS_ACTION, notes=None,
            updated=None, deleted=False) -> RemoteTask:
        task = RemoteTask(
            id=task_id,
            title=title,
            status=status,
            notes=notes,
            updated=updated or self.stamp(),
            deleted=deleted
        )
        self.tasks[task_id] = task
        return task

    def edit(self, task_id, *, updated=None, **changes) -> RemoteTask:
        task = replace(self.tasks[task_id], updated=updated or self.stamp(), **changes)
        self.tasks[task_id] = task
        return task

    def fail(self, method, key, error):
        """Make `method` raise `error` for a task id (or title, for create_task)"""
        self.errors[(method, key)] = error

    @property
    def mutations(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] != "list_tasks"]

    def _check(self, method, key):
        self.calls.append((method, key))
        error = self.errors.get((method, key))
        if error is not None:
            raise error

    def list_tasks(self, token):
        self.tokens_seen.append(token)
        self._check("list_tasks", "*")
        return list(self.tasks.values())

    def create_task(self, token, title, status, notes):
        self._check("create_task", title)
        task_id = f"r{self._next_id}"
        self._next_id += 1
        return self.add(task_id, title, status=status, notes=notes or None)

    def update_task(self, token, task_id, title, status, notes):
        self._check("update_task", task_id)
        current = self.tasks.get(task_id)
        if current is None or current.deleted:
            raise RemoteTaskError("Remote service returned HTTP 404", status_code=404)
        return self.edit(task_id, title=title, status=status, notes=notes or None)

    def delete_task(self, token, task_id):
        self._check("delete_task", task_id)
        if task_id in self.tasks:
            self.edit(task_id, deleted=True)

    def close(self):
        pass


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled

    def fire(self):
        """Run the callback the way threading.Timer would, unless cancelled"""
        if self.active:
            self.cancelled = True
            self.function()


class FakeTimers:
    """Timer factory that records every timer it builds"""

    def __init__(self):
        self.created: list[FakeTimer] = []

    def __call__(self, interval, function) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.created.append(timer)
        return timer

    def active(self, interval=None) -> list[FakeTimer]:
        return [
            timer for timer in self.created
            if timer.active and (interval is None or timer.interval == interval)
        ]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def store(temp_dir):
    """Task store backed by a temporary SQLite file"""
    task_store = TaskStore(temp_dir / "tasks.db")
    yield task_store
    task_store.close()


@pytest.fixture
def config(temp_dir):
    """Configuration with every path inside the temporary directory"""
    return Config(
        remote=RemoteConfig(client_id="client-123", client_secret="secret-456"),
        storage=StorageConfig(database_path=temp_dir / "tasks.db"),
        logging=LoggingConfig(console_output=False),
        security=SecurityConfig(token_storage_path=temp_dir / "tokens.json"),
    )


@pytest.fixture
def remote():
    return FakeRemoteClient()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return FakeTimers()
