"""
Task models shared by the local store, the remote client and the sync engine.
"""

from pomosync.tasks.models import Priority, RemoteStatus, RemoteTask, SyncStats, Task

__all__ = [
    "Priority",
    "RemoteStatus",
    "RemoteTask",
    "SyncStats",
    "Task",
]
