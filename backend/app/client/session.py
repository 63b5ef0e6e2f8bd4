"""HTTP client that keeps a token pair and refreshes it silently on 401."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000/api/v1"

# Requests to these paths never trigger a silent refresh
_NO_REFRESH_PATHS = ("/auth/login", "/auth/register", "/auth/refresh")


class SessionExpiredError(Exception):
    """The refresh token was rejected; the user has to sign in again"""


class TokenStorage:
    """In-memory token holder; subclass to persist tokens elsewhere"""

    def __init__(self) -> None:
        self._access: Optional[str] = None
        self._refresh: Optional[str] = None

    def get_access_token(self) -> Optional[str]:
        return self._access

    def get_refresh_token(self) -> Optional[str]:
        return self._refresh

    def save(self, access_token: str, refresh_token: str) -> None:
        self._access = access_token
        self._refresh = refresh_token

    def clear(self) -> None:
        self._access = None
        self._refresh = None


class AuthClient:
    """
    Session manager for the auth API.

    Attaches the stored access token to every request. When a request other
    than login/register/refresh comes back 401, the client refreshes the token
    pair once and retries that request once. A failed refresh clears the
    stored tokens and raises SessionExpiredError.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        storage: Optional[TokenStorage] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.storage = storage or TokenStorage()
        self._refresh_lock = threading.Lock()
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = dict(kwargs.get("headers") or {})
        kwargs = {k: v for k, v in kwargs.items() if k != "headers"}
        token = self.storage.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self._http.request(method, path, headers=headers, **kwargs)

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a request, refreshing the session once on 401

        Raises:
            SessionExpiredError: If the silent refresh fails
            httpx.HTTPStatusError: For any other error status
        """
        sent_token = self.storage.get_access_token()
        response = self._send(method, path, **kwargs)

        if response.status_code == 401 and not path.startswith(_NO_REFRESH_PATHS):
            self._refresh_after_401(sent_token)
            response = self._send(method, path, **kwargs)

        response.raise_for_status()
        return response

    def _refresh_after_401(self, stale_token: Optional[str]) -> None:
        with self._refresh_lock:
            # Another thread already refreshed while we waited
            if stale_token and self.storage.get_access_token() != stale_token:
                return
            refresh_token = self.storage.get_refresh_token()
            if not refresh_token:
                self.storage.clear()
                raise SessionExpiredError("Not signed in")
            try:
                self.refresh(refresh_token)
            except httpx.HTTPStatusError as exc:
                logger.info("Silent refresh rejected with status %s", exc.response.status_code)
                self.storage.clear()
                raise SessionExpiredError("Session expired, please sign in again") from exc

    def _store_tokens(self, tokens: Dict[str, Any]) -> None:
        self.storage.save(tokens["accessToken"], tokens["refreshToken"])

    # ------------------------------------------------------------------
    # Auth API
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self.request("POST", "/auth/login", json={"email": email, "password": password}).json()
        self._store_tokens(data["tokens"])
        return data

    def register(self, email: str, password: str, name: str, role_id: Optional[str] = None) -> Dict[str, Any]:
        payload = {"email": email, "password": password, "name": name}
        if role_id:
            payload["roleId"] = role_id
        data = self.request("POST", "/auth/register", json=payload).json()
        self._store_tokens(data["tokens"])
        return data

    def refresh(self, refresh_token: Optional[str] = None) -> Dict[str, Any]:
        token = refresh_token or self.storage.get_refresh_token()
        response = self._http.post("/auth/refresh", json={"refreshToken": token})
        response.raise_for_status()
        tokens = response.json()
        self._store_tokens(tokens)
        return tokens

    def logout(self) -> Dict[str, Any]:
        """Tell the server, then forget the tokens regardless of the outcome"""
        try:
            return self.request("POST", "/auth/logout").json()
        except (httpx.HTTPError, SessionExpiredError):
            logger.info("Logout request failed; clearing local session anyway")
            return {"message": "Logout completed"}
        finally:
            self.storage.clear()

    def me(self) -> Dict[str, Any]:
        return self.request("GET", "/auth/me").json()

    def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        return self.request(
            "PUT",
            "/auth/change-password",
            json={"currentPassword": current_password, "newPassword": new_password},
        ).json()

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self.request("POST", "/auth/forgot-password", json={"email": email}).json()

    def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        return self.request(
            "POST",
            "/auth/reset-password",
            json={"token": token, "newPassword": new_password},
        ).json()

    @property
    def is_authenticated(self) -> bool:
        return self.storage.get_access_token() is not None
