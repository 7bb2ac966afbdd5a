"""
HTTP client for the remote task service (Google Tasks REST API v1).

All calls go through one requests.Session, carry a per-call timeout and
are retried with bounded exponential backoff when they fail with a
transient NetworkError. Responses are mapped onto the pomosync exception
hierarchy:

    401, 403                          -> AuthError     (not retried)
    connection error, timeout,
    429, 5xx, 403 rate limit          -> NetworkError  (retried)
    404 on DELETE                     -> success (already gone)
    any other non-2xx                 -> RemoteTaskError

The access token is passed to every call rather than stored, so the
scheduler stays the single owner of credentials.
"""

import time
from typing import Any, Callable

import requests

from pomosync.core.config import NetworkConfig, RemoteConfig
from pomosync.core.exceptions import AuthError, NetworkError, RemoteTaskError
from pomosync.core.logger import get_logger
from pomosync.tasks.models import RemoteStatus, RemoteTask
from pomosync.utils import retry_with_backoff


PAGE_SIZE = 100

# 403 reasons that mean "slow down" rather than "bad credentials"
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


def _error_reason(response: requests.Response) -> str | None:
    """Return the first error reason of a Google API error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
        return None
    errors = body["error"].get("errors") or []
    if errors and isinstance(errors[0], dict):
        return errors[0].get("reason")
    return None


class RemoteTaskClient:
    """
    Google Tasks client scoped to one task list.

    Attributes:
        base_url: API root, e.g. https://tasks.googleapis.com/tasks/v1
        tasklist: Task list id ("@default" for the user's primary list).
        timeout: Per-call timeout in seconds.
    """

    def __init__(
        self,
        remote_config: RemoteConfig | None = None,
        network_config: NetworkConfig | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        remote_config = remote_config or RemoteConfig()
        network_config = network_config or NetworkConfig()

        self.base_url = remote_config.api_base_url.rstrip("/")
        self.tasklist = remote_config.tasklist
        self.timeout = network_config.request_timeout
        self.logger = get_logger(__name__)

        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": network_config.user_agent,
        })

        self._send = retry_with_backoff(
            max_attempts=network_config.max_retries,
            delay=network_config.retry_delay,
            backoff=network_config.backoff,
            max_delay=network_config.max_delay,
            jitter=network_config.jitter,
            retry_on=(NetworkError,),
            sleep=sleep
        )(self._send_once)

    @property
    def tasks_url(self) -> str:
        return f"{self.base_url}/lists/{self.tasklist}/tasks"

    def close(self) -> None:
        self.session.close()

    def _send_once(
        self,
        method: str,
        url: str,
        token: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        allow_not_found: bool = False
    ) -> dict[str, Any] | None:
        """
        Perform one HTTP call and map its outcome.

        Returns:
            The decoded JSON body, or None for empty bodies and tolerated 404s.
        """
        if not token:
            raise AuthError("No access token available", details={"url": url})

        headers = {"Authorization": f"Bearer {token}"}

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=payload,
                timeout=self.timeout
            )
        except requests.Timeout as e:
            raise NetworkError(
                f"{method} {url} timed out after {self.timeout}s",
                details={"url": url, "original_error": str(e)}
            ) from e
        except requests.RequestException as e:
            raise NetworkError(
                f"{method} {url} failed: {e}",
                details={"url": url, "original_error": str(e)}
            ) from e

        status = response.status_code
        details = {"url": url, "method": method, "status_code": status}

        if status == 403 and _error_reason(response) in RATE_LIMIT_REASONS:
            raise NetworkError(f"Remote service rate limit exceeded (HTTP {status})", details=details, status_code=status)

        if status in (401, 403):
            raise AuthError("Remote service rejected the access token", details=details, status_code=status)

        if status == 429 or status >= 500:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                details["retry_after"] = retry_after
            raise NetworkError(f"Remote service unavailable (HTTP {status})", details=details, status_code=status)

        if status == 404 and allow_not_found:
            self.logger.debug(f"{method} {url}: already gone")
            return None

        if not 200 <= status < 300:
            details["body"] = response.text[:500]
            raise RemoteTaskError(f"Remote service returned HTTP {status}", details=details, status_code=status)

        if status == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RemoteTaskError(
                "Remote service returned an invalid JSON body",
                details=details,
                status_code=status
            ) from e

    def list_tasks(self, token: str) -> list[RemoteTask]:
        """
        Fetch every task of the list, including completed, hidden and
        deleted ones (tombstones carry deleted=true).
        """
        params: dict[str, Any] = {
            "showCompleted": "true",
            "showHidden": "true",
            "showDeleted": "true",
            "maxResults": PAGE_SIZE,
        }
        tasks: list[RemoteTask] = []

        while True:
            data = self._send("GET", self.tasks_url, token, params=dict(params)) or {}
            tasks.extend(RemoteTask.from_api(item) for item in data.get("items", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token

        self.logger.debug(f"Fetched {len(tasks)} remote task(s)")
        return tasks

    def create_task(
        self,
        token: str,
        title: str,
        status: RemoteStatus,
        notes: str | None
    ) -> RemoteTask:
        payload = {"title": title, "status": status.value, "notes": notes or ""}
        data = self._send("POST", self.tasks_url, token, payload=payload)
        if not data:
            raise RemoteTaskError("Remote service returned an empty body on create", details={"title": title})
        return RemoteTask.from_api(data)

    def update_task(
        self,
        token: str,
        task_id: str,
        title: str,
        status: RemoteStatus,
        notes: str | None
    ) -> RemoteTask:
        """
        Patch title, status and notes of a remote task.

        Returns the updated resource; its `updated` field is the new
        modification time.
        """
        payload: dict[str, Any] = {"title": title, "status": status.value, "notes": notes or ""}
        if status == RemoteStatus.NEEDS_ACTION:
            # Reopening requires clearing the completion time explicitly
            payload["completed"] = None

        data = self._send("PATCH", f"{self.tasks_url}/{task_id}", token, payload=payload)
        if not data:
            raise RemoteTaskError("Remote service returned an empty body on update", details={"task_id": task_id})
        return RemoteTask.from_api(data)

    def delete_task(self, token: str, task_id: str) -> None:
        """Delete a remote task. A task that is already gone counts as deleted."""
        self._send("DELETE", f"{self.tasks_url}/{task_id}", token, allow_not_found=True)
