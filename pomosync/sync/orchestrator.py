"""
Sync orchestrator: one full two-way reconciliation pass.

A pass runs in three ordered stages over snapshots fetched concurrently
from both sides:

    Pass A  remote -> local   create, update and delete local tasks from the
                              remote listing, then sweep local tasks whose
                              remote id vanished from the listing
    Pass B  local -> remote   push new and changed local tasks, then delete
                              remote tasks the user deleted locally
    Pass C  re-verification   drop local tasks still pointing at a remote id
                              that is neither live nor created in Pass B

Every reconciled pair is stamped with the remote's own `updated` time, so
running a second pass without outside changes does nothing.

Failures of a single task are logged, recorded and skipped; the pass
completes and then raises PartialFailureError. Credential and transport
errors (after the client's own retries) abort the pass.
"""

from concurrent.futures import ThreadPoolExecutor

from pomosync.core.database import TaskStore
from pomosync.core.exceptions import (
    AuthError,
    NetworkError,
    PartialFailureError,
    PerTaskError,
    PomoSyncError,
)
from pomosync.core.logger import get_logger
from pomosync.remote.client import RemoteTaskClient
from pomosync.sync.classifier import Action, Decision, classify
from pomosync.sync.notes import decode, encode, is_encoded
from pomosync.tasks.models import RemoteTask, SyncStats, Task


class SyncOrchestrator:
    """
    Runs sync passes between a TaskStore and a RemoteTaskClient.

    The orchestrator holds no state between passes; anything that must
    survive (remote links, pending deletions) lives in the store.
    """

    def __init__(self, store: TaskStore, client: RemoteTaskClient, max_workers: int = 2) -> None:
        self.store = store
        self.client = client
        self.max_workers = max_workers
        self.logger = get_logger(__name__)

    def run_sync(self, token: str) -> SyncStats:
        """
        Run one full pass.

        Args:
            token: A valid access token for the remote service.

        Returns:
            SyncStats with created/updated/deleted/conflicts counters.

        Raises:
            AuthError: The token was rejected.
            NetworkError: The remote service stayed unreachable after retries.
            PartialFailureError: The pass completed but some tasks failed;
                                 the error carries the stats.
        """
        remote_tasks, local_tasks = self._fetch_snapshots(token)
        self.logger.debug(f"Snapshots: {len(remote_tasks)} remote, {len(local_tasks)} local")

        remote_by_id = {task.id: task for task in remote_tasks}
        live_ids = {task.id for task in remote_tasks if not task.deleted}
        stats = SyncStats()

        self._pull_remote_changes(token, remote_by_id, local_tasks, stats)
        created_ids = self._push_local_changes(token, remote_by_id, stats)
        self._verify_orphans(live_ids | created_ids, stats)

        self.logger.info(f"Sync pass finished: {stats}")

        if stats.failures:
            raise PartialFailureError(stats)
        return stats

    def _fetch_snapshots(self, token: str) -> tuple[list[RemoteTask], list[Task]]:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pomosync-fetch") as pool:
            remote_future = pool.submit(self.client.list_tasks, token)
            local_future = pool.submit(self.store.list_tasks)
            # Both must finish before any pass starts
            local_tasks = local_future.result()
            remote_tasks = remote_future.result()
        return remote_tasks, local_tasks

    # =========================================================================
    # Passes
    # =========================================================================

    def _pull_remote_changes(
        self,
        token: str,
        remote_by_id: dict[str, RemoteTask],
        local_tasks: list[Task],
        stats: SyncStats
    ) -> None:
        """Pass A: apply remote state to the local store."""
        local_by_remote = {task.remote_task_id: task for task in local_tasks if task.remote_task_id}
        pending_deletions = set(self.store.pending_remote_deletions())

        for remote in remote_by_id.values():
            local = local_by_remote.get(remote.id)
            decision = classify(local, remote, locally_deleted=remote.id in pending_deletions)
            if decision.action is Action.CREATE_LOCAL and not remote.title.strip():
                self.logger.debug(f"Ignoring untitled remote task {remote.id}")
                continue
            if decision.action.side == "local":
                self._execute(decision, token, local, remote, stats)

        # Orphans: linked locally but missing from the listing altogether
        for remote_id, local in local_by_remote.items():
            if remote_id not in remote_by_id:
                self._execute(classify(local, None), token, local, None, stats)

    def _push_local_changes(
        self,
        token: str,
        remote_by_id: dict[str, RemoteTask],
        stats: SyncStats
    ) -> set[str]:
        """
        Pass B: push local state to the remote service.

        Works on a fresh read of the store so Pass A results are visible.
        Returns the ids of remote tasks created during this pass.
        """
        created_ids: set[str] = set()

        for local in self.store.list_tasks():
            remote = remote_by_id.get(local.remote_task_id) if local.remote_task_id else None
            decision = classify(local, remote)
            if decision.action.side != "remote":
                continue

            if decision.conflict:
                self.logger.warning(
                    f"Conflict on task {local.id} ('{local.name}'): both sides changed "
                    f"at the same time, keeping local version"
                )
                stats.conflicts += 1

            created = self._execute(decision, token, local, remote, stats)
            if created is not None:
                remote_by_id[created.id] = created
                created_ids.add(created.id)

        for remote_id in self.store.pending_remote_deletions():
            remote = remote_by_id.get(remote_id)
            decision = classify(None, remote, locally_deleted=True)
            if decision.action is Action.DELETE_REMOTE:
                self._execute(decision, token, None, remote, stats)
            else:
                # Already gone on the remote side
                self.store.clear_remote_deletion(remote_id)

        return created_ids

    def _verify_orphans(self, known_ids: set[str], stats: SyncStats) -> None:
        """Pass C: remove local tasks whose remote counterpart no longer exists."""
        for local in self.store.list_tasks():
            if local.remote_task_id and local.remote_task_id not in known_ids:
                self._execute(Decision(Action.DELETE_LOCAL), "", local, None, stats)

    # =========================================================================
    # Actions
    # =========================================================================

    def _execute(
        self,
        decision: Decision,
        token: str,
        local: Task | None,
        remote: RemoteTask | None,
        stats: SyncStats
    ) -> RemoteTask | None:
        """
        Perform one action and count it.

        Returns the created remote task for create_remote, None otherwise.
        Per-task failures are recorded in stats; AuthError and NetworkError
        propagate.
        """
        action = decision.action
        try:
            if action is Action.CREATE_LOCAL:
                self._create_local(remote)
                stats.created += 1
            elif action is Action.UPDATE_LOCAL:
                self._update_local(local, remote)
                stats.updated += 1
            elif action is Action.DELETE_LOCAL:
                self._delete_local(local)
                stats.deleted += 1
            elif action is Action.CREATE_REMOTE:
                created = self._create_remote(token, local)
                stats.created += 1
                return created
            elif action is Action.UPDATE_REMOTE:
                self._update_remote(token, local, remote)
                stats.updated += 1
            elif action is Action.DELETE_REMOTE:
                self._delete_remote(token, remote)
                stats.deleted += 1
        except (AuthError, NetworkError):
            raise
        except PomoSyncError as e:
            ref = local.id if local is not None else remote.id if remote is not None else "?"
            failure = PerTaskError(
                f"{action.value} task {ref}: {e.message}",
                action=action.value,
                task_ref=ref,
                details={**e.details, "original_error": e.message}
            )
            self.logger.error(f"Failed to {failure.message}")
            self.logger.debug(f"Details: {failure.details}")
            stats.skipped += 1
            stats.failures.append(failure.message)
        return None

    def _create_local(self, remote: RemoteTask) -> None:
        fields = decode(remote.notes)
        task = self.store.insert(
            remote.title,
            estimated_pomodoros=fields.estimated_pomodoros,
            completed_pomodoros=fields.completed_pomodoros,
            is_complete=remote.is_completed,
            priority=fields.priority,
            remote_task_id=remote.id,
            notes=fields.notes,
            updated_at=remote.updated
        )
        self.logger.info(f"Created local task {task.id} '{task.name}' from remote {remote.id}")

    def _update_local(self, local: Task, remote: RemoteTask) -> None:
        fields = decode(remote.notes)
        changes = {"is_complete": remote.is_completed, "notes": fields.notes}

        title = remote.title.strip()
        if title:
            changes["name"] = title

        # Hand-written remote notes carry no metadata; keep the local counts
        if is_encoded(remote.notes):
            changes["estimated_pomodoros"] = fields.estimated_pomodoros
            changes["completed_pomodoros"] = fields.completed_pomodoros
            changes["priority"] = fields.priority

        self.store.mark_synced(local.id, remote_task_id=remote.id, synced_at=remote.updated, **changes)
        self.logger.info(f"Updated local task {local.id} '{changes.get('name', local.name)}' from remote")

    def _delete_local(self, local: Task) -> None:
        self.store.delete(local.id, record_tombstone=False)
        self.logger.info(f"Deleted local task {local.id} '{local.name}' (removed remotely)")

    def _create_remote(self, token: str, local: Task) -> RemoteTask:
        created = self.client.create_task(token, local.name, local.remote_status, encode(local))
        # Persist the link right away so a later failure cannot duplicate the task
        self.store.mark_synced(local.id, remote_task_id=created.id, synced_at=created.updated)
        self.logger.info(f"Created remote task {created.id} for '{local.name}'")
        return created

    def _update_remote(self, token: str, local: Task, remote: RemoteTask) -> None:
        updated = self.client.update_task(token, remote.id, local.name, local.remote_status, encode(local))
        self.store.mark_synced(local.id, remote_task_id=remote.id, synced_at=updated.updated)
        self.logger.info(f"Updated remote task {remote.id} from '{local.name}'")

    def _delete_remote(self, token: str, remote: RemoteTask) -> None:
        self.client.delete_task(token, remote.id)
        self.store.clear_remote_deletion(remote.id)
        self.logger.info(f"Deleted remote task {remote.id} '{remote.title}' (removed locally)")


def run_sync(store: TaskStore, client: RemoteTaskClient, token: str) -> SyncStats:
    """Run a single pass with a throwaway orchestrator."""
    return SyncOrchestrator(store, client).run_sync(token)
