"""Client-side holder of "who is logged in".

`AuthContext` is a small state machine. Every state change goes through
`_transition`, and every public operation finishes in either
`AUTHENTICATED` or `UNAUTHENTICATED`, even when the network fails.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Callable, MutableMapping

from dashboard.client.api_client import DashboardApiClient, SessionEvent
from dashboard.core.errors import DashboardError, ErrorKind, PendingApproval

logger = logging.getLogger(__name__)

USER_KEY = "user"
SUPERSEDED_MESSAGE = "Sign-in was interrupted by a newer session change. Please try again."


class AuthStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


TRANSITIONS = {
    AuthStatus.UNINITIALIZED: {AuthStatus.LOADING, AuthStatus.UNAUTHENTICATED},
    AuthStatus.LOADING: {AuthStatus.LOADING, AuthStatus.AUTHENTICATED, AuthStatus.UNAUTHENTICATED},
    AuthStatus.AUTHENTICATED: {AuthStatus.LOADING, AuthStatus.AUTHENTICATED, AuthStatus.UNAUTHENTICATED},
    AuthStatus.UNAUTHENTICATED: {AuthStatus.LOADING, AuthStatus.AUTHENTICATED, AuthStatus.UNAUTHENTICATED},
}


@dataclass
class AuthResult:
    ok: bool
    message: str | None = None
    kind: ErrorKind | None = None
    pending_approval: bool = False


class AuthContext:
    def __init__(
        self,
        api: DashboardApiClient,
        credential_store: MutableMapping | None = None,
        on_reload: Callable[[], None] | None = None,
    ):
        self.api = api
        self.credential_store = credential_store if credential_store is not None else {}
        self.on_reload = on_reload
        self.status = AuthStatus.UNINITIALIZED
        self.user: dict | None = None
        self._generation = 0
        self._lock = RLock()
        self._listeners: list[Callable[[AuthStatus, dict | None], None]] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def loading(self) -> bool:
        return self.status == AuthStatus.LOADING

    @property
    def initialized(self) -> bool:
        return self.status != AuthStatus.UNINITIALIZED

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"

    def subscribe(self, listener: Callable[[AuthStatus, dict | None], None]) -> None:
        self._listeners.append(listener)

    def _transition(self, status: AuthStatus, user: dict | None = None) -> None:
        with self._lock:
            if status not in TRANSITIONS[self.status]:
                raise RuntimeError(f"Invalid auth transition {self.status.value} -> {status.value}")
            self.status = status
            self.user = user if status == AuthStatus.AUTHENTICATED else None
        logger.debug("Auth state is now %s", status.value)
        for listener in list(self._listeners):
            listener(status, self.user)

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _settle(self) -> None:
        # Never leave the context stuck in LOADING.
        if self.status == AuthStatus.LOADING:
            self._transition(AuthStatus.UNAUTHENTICATED)

    def mount(self) -> None:
        """Subscribe to session events and resolve the initial session."""
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = self.api.on_session_change(self._handle_session_event)
        self.sync_session()

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def sync_session(self) -> None:
        generation = self._next_generation()
        self._transition(AuthStatus.LOADING)
        try:
            user = self.api.me()
        except DashboardError as exc:
            logger.info("Session lookup failed: %s", exc.kind.value)
            user = None
        except Exception:
            self._settle()
            raise

        if not self._is_current(generation):
            logger.debug("Discarding stale session lookup")
            self._settle()
            return
        if user:
            self.credential_store[USER_KEY] = user
            self._transition(AuthStatus.AUTHENTICATED, user)
        else:
            self.credential_store.pop(USER_KEY, None)
            self._transition(AuthStatus.UNAUTHENTICATED)

    def login(self, email: str, password: str) -> AuthResult:
        generation = self._next_generation()
        self._transition(AuthStatus.LOADING)
        try:
            user = self.api.login(email, password)
        except PendingApproval as exc:
            self._settle()
            return AuthResult(ok=False, message=exc.message, kind=exc.kind, pending_approval=True)
        except DashboardError as exc:
            self._settle()
            return AuthResult(ok=False, message=exc.message, kind=exc.kind)
        except Exception:
            self._settle()
            raise

        if not self._is_current(generation) and self.status != AuthStatus.LOADING:
            logger.info("Discarding login superseded by a newer session change")
            return AuthResult(ok=False, message=SUPERSEDED_MESSAGE)

        self.credential_store[USER_KEY] = user
        self._transition(AuthStatus.AUTHENTICATED, user)
        return AuthResult(ok=True, message="Login successful")

    def register(self, name: str, email: str, password: str) -> AuthResult:
        """Create a pending account. The caller stays signed out."""
        try:
            body = self.api.register(name, email, password)
        except DashboardError as exc:
            return AuthResult(ok=False, message=exc.message, kind=exc.kind)
        return AuthResult(ok=True, message=body.get("message"), pending_approval=True)

    def refresh_session(self) -> bool:
        try:
            self.api.refresh()
        except DashboardError as exc:
            logger.info("Silent refresh failed: %s", exc.kind.value)
            return False
        self.sync_session()
        return self.status == AuthStatus.AUTHENTICATED

    def logout(self) -> None:
        self._next_generation()
        try:
            self.api.logout()
            self.credential_store.pop(USER_KEY, None)
        except Exception as exc:
            logger.warning("Logout request failed (%s); clearing local credentials", exc.__class__.__name__)
            try:
                self.credential_store.clear()
            except Exception:
                logger.exception("Could not clear local credentials")
                self._reload()
        finally:
            self._transition(AuthStatus.UNAUTHENTICATED)

    def _reload(self) -> None:
        if self.on_reload is not None:
            self.on_reload()

    def _handle_session_event(self, event: SessionEvent, payload: dict | None) -> None:
        if event == SessionEvent.SIGNED_OUT:
            self._next_generation()
            if self.status != AuthStatus.UNAUTHENTICATED:
                self.credential_store.pop(USER_KEY, None)
                self._transition(AuthStatus.UNAUTHENTICATED)
