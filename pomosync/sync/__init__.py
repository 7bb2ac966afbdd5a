"""
Bidirectional sync engine.

Modules:
    notes         - Pomodoro metadata codec for the remote notes field
    classifier    - Decision table for one local/remote pairing
    orchestrator  - Full three-stage sync pass
    scheduler     - Cooldown, debounce, periodic trigger and status

Usage:
    from pomosync.sync import SyncOrchestrator, SyncScheduler

    orchestrator = SyncOrchestrator(store, client)
    scheduler = SyncScheduler(orchestrator, tokens, config.sync)
    stats = scheduler.manual_sync()
"""

from pomosync.sync.classifier import Action, Decision, classify, content_differs
from pomosync.sync.notes import NoteFields, decode, encode, is_encoded
from pomosync.sync.orchestrator import SyncOrchestrator, run_sync
from pomosync.sync.scheduler import SchedulerState, SyncScheduler, SyncStatus, SyncStatusKind

__all__ = [
    # Codec
    "NoteFields",
    "decode",
    "encode",
    "is_encoded",
    # Classifier
    "Action",
    "Decision",
    "classify",
    "content_differs",
    # Orchestrator
    "SyncOrchestrator",
    "run_sync",
    # Scheduler
    "SchedulerState",
    "SyncScheduler",
    "SyncStatus",
    "SyncStatusKind",
]
