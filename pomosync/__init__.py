"""
pomosync: Pomodoro task list with two-way Google Tasks sync.

Tasks live in a local SQLite store with pomodoro estimates, progress and
priority. A sync engine keeps them in step with a Google Tasks list,
carrying the pomodoro metadata inside each remote task's notes.

Architecture:
    core/      - Configuration, SQLite task store, logging, exceptions
    tasks/     - Task, RemoteTask and SyncStats models
    remote/    - OAuth token management and the Google Tasks REST client
    sync/      - Note codec, change classifier, sync orchestrator, scheduler
    utils/     - Timestamp helpers and retry with backoff
    cli.py     - Command-line interface

Sync pass (see sync/orchestrator.py):
    Pass A     remote -> local, including orphan detection
    Pass B     local -> remote, including locally deleted tasks
    Pass C     orphan re-verification

Usage:
    Command Line:
        pomosync add "Draft report" --estimate 3 --priority high
        pomosync auth login
        pomosync sync
        pomosync watch

    Python API:
        from pomosync.core import load_config, TaskStore
        from pomosync.remote import RemoteTaskClient, TokenManager
        from pomosync.sync import SyncOrchestrator, SyncScheduler

        config = load_config()
        store = TaskStore(config.storage.database_path)
        client = RemoteTaskClient(config.remote, config.network)
        tokens = TokenManager(config)
        scheduler = SyncScheduler(SyncOrchestrator(store, client), tokens, config.sync)
        stats = scheduler.manual_sync()
"""

__version__ = "0.3.0"
__author__ = "pomosync contributors"

from pomosync.core import (
    Config,
    ConfigError,
    DatabaseError,
    PomoSyncError,
    TaskStore,
    load_config,
)
from pomosync.tasks import Priority, RemoteTask, SyncStats, Task

__all__ = [
    "__version__",
    "Config",
    "ConfigError",
    "DatabaseError",
    "PomoSyncError",
    "Priority",
    "RemoteTask",
    "SyncStats",
    "Task",
    "TaskStore",
    "load_config",
]
