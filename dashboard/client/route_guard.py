from dataclasses import dataclass
from enum import Enum

from dashboard.client.auth_context import AuthContext, AuthStatus
from dashboard.core import config

MAX_REFRESH_ATTEMPTS = 2


class GuardAction(str, Enum):
    LOADING = "loading"
    RENDER = "render"
    REDIRECT = "redirect"
    NOTHING = "nothing"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    path: str | None = None


class RouteGuard:
    """Decides what a protected view shows for the current auth state.

    Unauthenticated views render nothing rather than redirecting; the
    server-side session gate owns the login redirect.
    """

    def __init__(
        self,
        context: AuthContext,
        require_admin: bool = False,
        max_refresh_attempts: int = MAX_REFRESH_ATTEMPTS,
    ):
        self.context = context
        self.require_admin = require_admin
        self.max_refresh_attempts = max_refresh_attempts
        self.refresh_attempts = 0

    def evaluate(self) -> GuardDecision:
        if self.context.status in (AuthStatus.UNINITIALIZED, AuthStatus.LOADING):
            return GuardDecision(GuardAction.LOADING)

        while self.context.status == AuthStatus.UNAUTHENTICATED and self.refresh_attempts < self.max_refresh_attempts:
            self.refresh_attempts += 1
            self.context.refresh_session()

        if self.context.status != AuthStatus.AUTHENTICATED:
            return GuardDecision(GuardAction.NOTHING)

        self.refresh_attempts = 0
        if self.require_admin and not self.context.is_admin:
            return GuardDecision(GuardAction.REDIRECT, config.DEFAULT_LANDING_PATH)
        return GuardDecision(GuardAction.RENDER)
