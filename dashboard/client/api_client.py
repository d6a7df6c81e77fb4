"""Python client for the dashboard HTTP API.

Works with any `httpx.Client` pointed at the service, including FastAPI's
`TestClient`. Cookies set by the service live in the client's cookie jar.
"""

import logging
from enum import Enum
from typing import Callable

import httpx

from dashboard.core.errors import (
    BadRequest,
    Conflict,
    DashboardError,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    PendingApproval,
    SystemFailure,
    Unauthorized,
    UpstreamFailure,
)

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


SessionListener = Callable[[SessionEvent, dict | None], None]


def _response_message(response: httpx.Response) -> tuple[str | None, dict]:
    try:
        body = response.json()
    except ValueError:
        return None, {}
    if not isinstance(body, dict):
        return None, {}
    return body.get("message") or body.get("error"), body


def error_from_response(response: httpx.Response, credentials_request: bool = False) -> DashboardError:
    message, body = _response_message(response)
    status_code = response.status_code

    if status_code == 400:
        return BadRequest(message)
    if status_code == 401:
        return InvalidCredentials(message) if credentials_request else InvalidToken(message)
    if status_code == 403:
        if body.get("status") == "pending_approval":
            return PendingApproval(message)
        return Unauthorized(message)
    if status_code == 404:
        return NotFound(message)
    if status_code == 409:
        return Conflict(message)
    if "error" in body:
        return UpstreamFailure(message)
    return SystemFailure(message)


class DashboardApiClient:
    def __init__(self, http: httpx.Client):
        self.http = http
        self.refresh_token: str | None = None
        self._signed_in = False
        self._listeners: list[SessionListener] = []

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent, payload: dict | None = None) -> None:
        self._signed_in = event != SessionEvent.SIGNED_OUT
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Session listener failed for %s", event.value)

    def _request(self, method: str, url: str, credentials_request: bool = False, **kwargs) -> dict | list:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", url, exc.__class__.__name__)
            raise SystemFailure("Could not reach the dashboard service.") from exc

        if response.is_error:
            error = error_from_response(response, credentials_request=credentials_request)
            if response.status_code == 401 and self._signed_in and not credentials_request:
                self.refresh_token = None
                self._emit(SessionEvent.SIGNED_OUT)
            raise error
        return response.json()

    def login(self, email: str, password: str) -> dict:
        body = self._request(
            "POST",
            "/api/auth/login",
            credentials_request=True,
            json={"email": email, "password": password},
        )
        self.refresh_token = body.get("refreshToken")
        self._emit(SessionEvent.SIGNED_IN, body.get("user"))
        return body["user"]

    def register(self, name: str, email: str, password: str) -> dict:
        return self._request("POST", "/api/auth/register", json={"name": name, "email": email, "password": password})

    def refresh(self) -> str:
        payload = {"refreshToken": self.refresh_token} if self.refresh_token else None
        body = self._request("POST", "/api/auth/refresh", json=payload)
        self._emit(SessionEvent.TOKEN_REFRESHED)
        return body["token"]

    def logout(self) -> None:
        payload = {"refreshToken": self.refresh_token} if self.refresh_token else None
        try:
            self._request("POST", "/api/auth/logout", json=payload)
        finally:
            self.refresh_token = None
            self.http.cookies.clear()
            self._emit(SessionEvent.SIGNED_OUT)

    def me(self) -> dict | None:
        try:
            body = self._request("GET", "/api/auth/me")
        except (InvalidToken, PendingApproval):
            return None
        return body.get("user")

    def get_json(self, path: str, params: dict | None = None) -> dict | list:
        return self._request("GET", path, params=params)
