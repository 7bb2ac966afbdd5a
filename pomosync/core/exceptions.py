"""
Exception classes for pomosync.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, so callers can log context without parsing strings.

Exception Hierarchy:
    PomoSyncError (base)
        ConfigError - Configuration file issues
        DatabaseError - Local SQLite store issues
            TaskNotFoundError - Unknown local task id
        ValidationError - Rejected task field values
        RemoteTaskError - Remote task service returned an unexpected status
            AuthError - Missing, expired or rejected credentials
            NetworkError - Transport failure, timeout, 429 or 5xx
        PerTaskError - One task could not be reconciled during a pass
        PartialFailureError - A pass finished but some tasks failed
"""

from typing import Any


class PomoSyncError(Exception):
    """
    Base exception for all pomosync errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all pomosync errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (task ids, URLs, status codes).

    Example:
        try:
            scheduler.manual_sync()
        except PomoSyncError as e:
            logger.error(f"Sync failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(PomoSyncError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml has invalid YAML syntax
        - A section is not a mapping
        - Invalid field values (e.g., negative cooldown)

    Example:
        raise ConfigError(
            "'sync.cooldown' must be a non-negative number",
            details={'field': 'sync.cooldown', 'value': -1}
        )
    """
    pass


class DatabaseError(PomoSyncError):
    """
    Raised when there's an issue with the local SQLite task store.

    Common causes:
        - Parent directory of the database file does not exist
        - Schema version mismatch
        - Constraint violation (two tasks linked to the same remote id)
    """
    pass


class TaskNotFoundError(DatabaseError):
    """Raised when a local task id does not exist."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found", details={'task_id': task_id})
        self.task_id = task_id


class ValidationError(PomoSyncError):
    """
    Raised when task fields are rejected before any write.

    Example:
        raise ValidationError(
            "Task name must not be empty",
            details={'field': 'name'}
        )
    """
    pass


class RemoteTaskError(PomoSyncError):
    """
    Raised when the remote task service answers with an unexpected status.

    Attributes:
        status_code: HTTP status code of the failed response, or None when
                     no response was received at all.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class AuthError(RemoteTaskError):
    """
    Raised when credentials are missing, expired or rejected (HTTP 401/403),
    or when a token refresh fails.

    This is a CRITICAL error for the current pass. The scheduler reacts by
    refreshing the token once and retrying; a second failure is surfaced
    to the user as an error status.
    """
    pass


class NetworkError(RemoteTaskError):
    """
    Raised on transport failures: connection errors, timeouts, HTTP 429
    and 5xx responses.

    These are the only errors retried with exponential backoff.
    """
    pass


class PerTaskError(PomoSyncError):
    """
    Raised when a single task cannot be reconciled.

    This is a NON-CRITICAL error: the orchestrator logs it, records it in
    the pass statistics and continues with the next task.
    """

    def __init__(self, message: str, action: str, task_ref: Any, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.action = action
        self.task_ref = task_ref


class PartialFailureError(PomoSyncError):
    """
    Raised at the end of a pass when some tasks failed.

    The pass itself ran to completion; `stats` holds the counters for the
    work that did succeed and `stats.failures` describes what did not.
    """

    def __init__(self, stats: Any) -> None:
        failures = list(getattr(stats, 'failures', []))
        super().__init__(
            f"Sync finished with {len(failures)} failed task(s)",
            details={'failures': failures}
        )
        self.stats = stats
