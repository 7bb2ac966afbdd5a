"""
OAuth2 token management for the remote task service.

Implements the pieces of the Google OAuth2 authorization code flow that a
terminal application needs:

1. Build the consent URL (offline access, so a refresh token is issued)
2. Exchange the pasted authorization code for access/refresh tokens
3. Store tokens in a JSON file readable by the owner only
4. Refresh the access token on demand

Staleness is judged by age rather than by the advertised expiry: an
access token older than `sync.token_max_age` (50 minutes by default, for
tokens that live 60) is refreshed before the next pass.

Security considerations:
- Tokens stored with restrictive file permissions (600)
- Refresh failures are terminal for the attempt; nothing retries in a loop
"""

import json
import time
import urllib.parse
from pathlib import Path
from typing import Any, Callable

import requests

from pomosync.core.config import Config
from pomosync.core.exceptions import AuthError
from pomosync.core.logger import get_logger


class TokenManager:
    """
    Stores, ages and refreshes OAuth tokens.

    Attributes:
        token_file: JSON file holding the token information.
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        redirect_uri: Redirect URI registered for the client.
        scope: Requested OAuth scope.
        max_age: Age in seconds after which the access token counts as stale.
    """

    def __init__(
        self,
        config: Config,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time
    ) -> None:
        self.token_file: Path = config.security.token_storage_path
        self.client_id = config.remote.client_id
        self.client_secret = config.remote.client_secret
        self.redirect_uri = config.remote.redirect_uri
        self.scope = config.remote.scope
        self.token_url = config.remote.token_url
        self.auth_url = config.remote.auth_url
        self.timeout = config.network.request_timeout
        self.max_age = config.sync.token_max_age

        self.session = session or requests.Session()
        self.clock = clock
        self.logger = get_logger(__name__)
        self._token_info: dict[str, Any] | None = None

    # =========================================================================
    # Storage
    # =========================================================================

    def _load_token(self) -> dict[str, Any] | None:
        """
        Load stored token information.

        Returns None when no file exists or its content is unusable; a
        broken file is logged and treated as "not connected".
        """
        if not self.token_file.exists():
            return None

        try:
            with open(self.token_file, "r", encoding="utf-8") as f:
                token_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Failed to load stored token: {e}")
            return None

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            self.logger.warning("Invalid token structure, re-authentication required")
            return None
        return token_data

    def _save_token(self, token_info: dict[str, Any]) -> None:
        try:
            self.token_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.token_file, "w", encoding="utf-8") as f:
                json.dump(token_info, f, indent=2)
        except OSError as e:
            raise AuthError(
                f"Cannot write token file {self.token_file}",
                details={"token_file": str(self.token_file), "original_error": str(e)}
            ) from e

        try:
            # 0o600 = owner read/write only
            self.token_file.chmod(0o600)
        except OSError:
            # Not supported on every platform
            pass

    def _token(self) -> dict[str, Any] | None:
        if self._token_info is None:
            self._token_info = self._load_token()
        return self._token_info

    def store_tokens(
        self,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: int = 3600,
        token_type: str = "Bearer",
        scope: str | None = None
    ) -> None:
        """Persist a fresh token set, stamping the time it was obtained."""
        self._token_info = {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": expires_in,
            "token_type": token_type,
            "scope": scope or self.scope,
            "obtained_at": self.clock(),
        }
        self._save_token(self._token_info)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def access_token(self) -> str | None:
        token = self._token()
        return token.get("access_token") if token else None

    @property
    def refresh_token(self) -> str | None:
        token = self._token()
        return token.get("refresh_token") if token else None

    def is_connected(self) -> bool:
        return self.access_token is not None

    def token_age(self) -> float | None:
        """Seconds since the access token was obtained, None when unknown."""
        token = self._token()
        if not token or "obtained_at" not in token:
            return None
        return max(self.clock() - float(token["obtained_at"]), 0.0)

    def is_stale(self) -> bool:
        """
        True when the access token should be refreshed before use.

        A token without a recorded age is considered stale.
        """
        age = self.token_age()
        return age is None or age > self.max_age

    # =========================================================================
    # OAuth flow
    # =========================================================================

    def authorization_url(self, state: str | None = None) -> str:
        """Consent page URL requesting offline access to tasks."""
        if not self.client_id:
            raise AuthError("remote.client_id is not configured")

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self.auth_url}?{urllib.parse.urlencode(params)}"

    def _post_token(self, data: dict[str, str]) -> dict[str, Any]:
        """POST to the token endpoint; any failure becomes AuthError."""
        data = {**data, "client_id": self.client_id, "client_secret": self.client_secret}
        try:
            response = self.session.post(
                self.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise AuthError(
                f"Token endpoint unreachable: {e}",
                details={"grant_type": data["grant_type"], "original_error": str(e)}
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok or "access_token" not in body:
            reason = body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"
            raise AuthError(
                f"Token request failed: {reason}",
                details={"grant_type": data["grant_type"]},
                status_code=response.status_code
            )
        return body

    def exchange_code(self, code: str) -> None:
        """Exchange an authorization code for tokens and store them."""
        code = code.strip()
        if not code:
            raise AuthError("Authorization code is empty")

        body = self._post_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        self.store_tokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_in=body.get("expires_in", 3600),
            token_type=body.get("token_type", "Bearer"),
            scope=body.get("scope")
        )
        self.logger.info("Connected to remote task service")

    def refresh(self) -> str:
        """
        Obtain a new access token with the stored refresh token.

        The refresh token is kept when the response does not rotate it.

        Returns:
            The new access token.

        Raises:
            AuthError: If there is no refresh token or the endpoint refuses.
        """
        refresh_token = self.refresh_token
        if not refresh_token:
            raise AuthError("No refresh token stored, please log in again")

        self.logger.debug("Refreshing access token...")
        body = self._post_token({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })
        self.store_tokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token", refresh_token),
            expires_in=body.get("expires_in", 3600),
            token_type=body.get("token_type", "Bearer"),
            scope=body.get("scope")
        )
        self.logger.info("Access token refreshed")
        return body["access_token"]

    def clear(self) -> None:
        """
        Forget all stored credentials.

        This only removes local token storage; the grant stays valid on the
        provider side until the user revokes it there.
        """
        if self.token_file.exists():
            self.token_file.unlink()
        self._token_info = None
