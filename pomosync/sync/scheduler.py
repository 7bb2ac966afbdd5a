"""
Sync scheduler: decides when a sync pass runs.

Triggers:
    manual      manual_sync(); dropped silently while a pass is running or
                during the cooldown after the last successful pass
    auto        notify_local_change() restarts a debounce timer; when it
                fires, a pass runs if the auto interval has elapsed
    periodic    start() arms a repeating timer

Every trigger ends up in the same gated path, so at most one pass is in
flight per scheduler. Before a pass the access token is refreshed if it is
stale; if the remote service rejects the token anyway, it is refreshed
and the pass retried exactly once.

The scheduler state is an explicit SchedulerState owned by the instance.
Callers read it through snapshot(), which returns an immutable SyncStatus.
"""

import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pomosync.core.config import SyncConfig
from pomosync.core.exceptions import AuthError, PartialFailureError, PomoSyncError
from pomosync.core.logger import get_logger
from pomosync.remote.auth import TokenManager
from pomosync.sync.orchestrator import SyncOrchestrator
from pomosync.tasks.models import SyncStats
from pomosync.utils import utc_now


class SyncStatusKind(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SchedulerState:
    """
    Mutable scheduler state, guarded by the scheduler lock.

    Attributes:
        last_sync_at: Monotonic time of the last completed pass (cooldown base).
        last_sync: Wall-clock time of the last completed pass (for display).
        sync_in_progress: A pass is running.
        status: Current user-facing status.
        stats: Counters of the last completed pass.
        last_error: Message of the last failure, cleared on success.
    """
    last_sync_at: float | None = None
    last_sync: datetime | None = None
    sync_in_progress: bool = False
    status: SyncStatusKind = SyncStatusKind.IDLE
    stats: SyncStats | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class SyncStatus:
    """Read-only view of the scheduler for status displays."""
    access_token: str | None
    is_syncing: bool
    last_sync: datetime | None
    sync_status: SyncStatusKind
    sync_stats: SyncStats | None
    can_sync: bool
    last_error: str | None = None


TimerFactory = Callable[[float, Callable[[], None]], Any]


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class SyncScheduler:
    """
    Gatekeeper around SyncOrchestrator.run_sync.

    Args:
        orchestrator: Runs the actual pass.
        tokens: Credential provider (access token, staleness, refresh).
        config: Timings; defaults match the desktop app (30 s cooldown,
                8 s debounce, 2 min auto interval, 10 min periodic).
        clock: Monotonic clock in seconds.
        wall_clock: Returns the current aware datetime.
        timer_factory: Builds a startable, cancellable one-shot timer.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        tokens: TokenManager,
        config: SyncConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utc_now,
        timer_factory: TimerFactory = _daemon_timer
    ) -> None:
        self.orchestrator = orchestrator
        self.tokens = tokens
        self.config = config or SyncConfig()
        self.clock = clock
        self.wall_clock = wall_clock
        self.timer_factory = timer_factory
        self.logger = get_logger(__name__)

        self.state = SchedulerState()
        self._lock = threading.RLock()
        self._debounce_timer: Any = None
        self._periodic_timer: Any = None
        self._reset_timer: Any = None
        self._running = False

    # =========================================================================
    # Guards
    # =========================================================================

    def _cooldown_elapsed(self, interval: float) -> bool:
        last = self.state.last_sync_at
        return last is None or (self.clock() - last) > interval

    def can_sync(self) -> bool:
        """True when no pass is running and the cooldown has elapsed."""
        with self._lock:
            return not self.state.sync_in_progress and self._cooldown_elapsed(self.config.cooldown)

    def snapshot(self) -> SyncStatus:
        with self._lock:
            return SyncStatus(
                access_token=self.tokens.access_token,
                is_syncing=self.state.sync_in_progress,
                last_sync=self.state.last_sync,
                sync_status=self.state.status,
                sync_stats=replace(self.state.stats) if self.state.stats else None,
                can_sync=not self.state.sync_in_progress and self._cooldown_elapsed(self.config.cooldown),
                last_error=self.state.last_error,
            )

    # =========================================================================
    # Triggers
    # =========================================================================

    def manual_sync(self) -> SyncStats | None:
        """
        Run a pass now if allowed.

        Returns:
            The pass statistics, or None when the request was dropped
            (pass running, cooldown, not connected) or the pass failed.
            Failures are reflected in the status and in last_error.
        """
        return self._run("manual")

    def notify_local_change(self) -> None:
        """Restart the debounce timer after a local edit."""
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            self._debounce_timer = self.timer_factory(self.config.debounce, self._on_debounce)
            self._debounce_timer.start()

    def start(self) -> None:
        """Arm the periodic trigger."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._arm_periodic()
        self.logger.debug(f"Periodic sync every {self.config.periodic_interval:.0f}s")

    def stop(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            self._running = False
            for timer in (self._debounce_timer, self._periodic_timer, self._reset_timer):
                if timer is not None:
                    timer.cancel()
            self._debounce_timer = None
            self._periodic_timer = None
            self._reset_timer = None

    def disconnect(self) -> None:
        """
        Stop syncing and forget the stored credentials.

        Local tasks keep their remote links; nothing is revoked remotely.
        """
        self.stop()
        self.tokens.clear()
        with self._lock:
            self.state.last_sync = None
            self.state.status = SyncStatusKind.IDLE
            self.state.stats = None
            self.state.last_error = None
        self.logger.info("Disconnected from remote task service")

    def _arm_periodic(self) -> None:
        self._periodic_timer = self.timer_factory(self.config.periodic_interval, self._on_periodic)
        self._periodic_timer.start()

    def _on_periodic(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._arm_periodic()
        if self.can_sync():
            self._run("periodic")

    def _on_debounce(self) -> None:
        with self._lock:
            self._debounce_timer = None
            if not self._cooldown_elapsed(self.config.auto_interval):
                self.logger.debug("Auto sync skipped: last pass too recent")
                return
        self._run("auto")

    # =========================================================================
    # Pass execution
    # =========================================================================

    def _run(self, origin: str) -> SyncStats | None:
        with self._lock:
            if not self.can_sync():
                self.logger.debug(f"{origin.capitalize()} sync dropped: pass running or in cooldown")
                return None

            token = self.tokens.access_token
            if not token:
                self.logger.debug(f"{origin.capitalize()} sync dropped: not connected")
                return None

            self.state.sync_in_progress = True
            self._set_status(SyncStatusKind.SYNCING)

        self.logger.info(f"Starting {origin} sync")
        try:
            if self.tokens.is_stale():
                self.logger.debug("Access token is stale, refreshing before sync")
                token = self.tokens.refresh()

            try:
                stats = self.orchestrator.run_sync(token)
            except AuthError:
                self.logger.warning("Access token rejected, refreshing and retrying once")
                token = self.tokens.refresh()
                stats = self.orchestrator.run_sync(token)

            self._record_success(stats)
            return stats

        except PartialFailureError as e:
            self._record_failure(e.message, stats=e.stats)
            return e.stats
        except PomoSyncError as e:
            self._record_failure(e.message)
            return None
        except Exception as e:
            self.logger.exception(f"Unexpected error during {origin} sync")
            self._record_failure(str(e) or type(e).__name__)
            return None
        finally:
            with self._lock:
                self.state.sync_in_progress = False

    def _record_success(self, stats: SyncStats) -> None:
        with self._lock:
            self.state.last_sync_at = self.clock()
            self.state.last_sync = self.wall_clock()
            self.state.stats = stats
            self.state.last_error = None
            self._set_status(SyncStatusKind.SUCCESS)
        self.logger.info(f"Sync completed: {stats}")

    def _record_failure(self, message: str, stats: SyncStats | None = None) -> None:
        with self._lock:
            if stats is not None:
                # The pass ran to completion, so it counts for the cooldown
                self.state.last_sync_at = self.clock()
                self.state.last_sync = self.wall_clock()
                self.state.stats = stats
            self.state.last_error = message
            self._set_status(SyncStatusKind.ERROR)
        self.logger.error(f"Sync failed: {message}")

    def _set_status(self, status: SyncStatusKind) -> None:
        """Change the status and schedule the return to idle. Lock must be held."""
        self.state.status = status

        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None

        delay = {
            SyncStatusKind.SUCCESS: self.config.success_reset,
            SyncStatusKind.ERROR: self.config.error_reset,
        }.get(status)
        if delay is not None:
            self._reset_timer = self.timer_factory(delay, lambda: self._reset_status(status))
            self._reset_timer.start()

    def _reset_status(self, expected: SyncStatusKind) -> None:
        with self._lock:
            if self.state.status == expected:
                self.state.status = SyncStatusKind.IDLE
            self._reset_timer = None
