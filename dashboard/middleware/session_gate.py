"""Redirects unauthenticated browsers away from protected pages.

Only paths under `config.PROTECTED_PATH_PREFIXES` are gated. API routes do
their own authorization through `dashboard.auth.dependencies`.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import State
from starlette.responses import RedirectResponse, Response

from dashboard.auth import cookies
from dashboard.auth.dependencies import resolve_identity
from dashboard.auth.identity import ProviderSession
from dashboard.core import config

logger = logging.getLogger(__name__)

AUTH_REDIRECT_PARAM = "auth_redirect"
RETURN_TO_PARAM = "returnTo"


@dataclass
class GateResult:
    authenticated: bool
    refreshed_session: ProviderSession | None = None


def is_protected_path(path: str, prefixes=None) -> bool:
    for prefix in prefixes if prefixes is not None else config.PROTECTED_PATH_PREFIXES:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def login_redirect_url(path: str, query: str) -> str:
    return_to = f"{path}?{query}" if query else path
    return f"{config.LOGIN_PATH}?{urlencode({RETURN_TO_PARAM: return_to})}"


def check_session(state: State, headers, request_cookies) -> GateResult:
    if resolve_identity(headers, request_cookies, state.token_service, state.identity_client) is not None:
        return GateResult(authenticated=True)

    refreshed = state.identity_client.refresh_session(request_cookies.get(config.PROVIDER_REFRESH_COOKIE))
    if refreshed is not None:
        logger.info("Refreshed provider session for user %s at the edge", refreshed.user_id)
        return GateResult(authenticated=True, refreshed_session=refreshed)
    return GateResult(authenticated=False)


def _propagate_cookies(response: Response, result: GateResult) -> None:
    if result.refreshed_session is not None:
        cookies.set_provider_cookies(response, result.refreshed_session)


async def session_gate_middleware(request: Request, call_next):
    path = request.url.path
    if not is_protected_path(path):
        return await call_next(request)

    result = await run_in_threadpool(check_session, request.app.state, request.headers, request.cookies)

    if not result.authenticated and AUTH_REDIRECT_PARAM not in request.query_params:
        logger.info("Redirecting unauthenticated request for %s to login", path)
        response = RedirectResponse(login_redirect_url(path, request.url.query), status_code=307)
        _propagate_cookies(response, result)
        return response

    response = await call_next(request)
    _propagate_cookies(response, result)
    return response


def setup_session_gate(app: FastAPI) -> None:
    app.middleware("http")(session_gate_middleware)
