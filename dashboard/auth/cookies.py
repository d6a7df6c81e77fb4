"""Helpers for the auth cookies set by the login, refresh and logout routes."""

from datetime import timedelta

from starlette.responses import Response

from dashboard.auth.identity import ProviderSession
from dashboard.auth.jwt_handler import TokenPair
from dashboard.core import config

PROVIDER_REFRESH_MAX_AGE = int(timedelta(days=7).total_seconds())


def _cookie_options() -> dict:
    return {"httponly": True, "secure": config.COOKIE_SECURE, "samesite": "lax"}


def set_access_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        config.ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=config.ACCESS_TOKEN_EXPIRES_MINUTES * 60,
        path="/",
        **_cookie_options(),
    )


def set_token_cookies(response: Response, tokens: TokenPair) -> None:
    set_access_cookie(response, tokens.access_token)
    response.set_cookie(
        config.REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=config.REFRESH_TOKEN_EXPIRES_DAYS * 24 * 60 * 60,
        path=config.REFRESH_TOKEN_COOKIE_PATH,
        **_cookie_options(),
    )


def set_provider_cookies(response: Response, session: ProviderSession) -> None:
    response.set_cookie(
        config.PROVIDER_ACCESS_COOKIE,
        session.access_token,
        max_age=session.max_age,
        path="/",
        **_cookie_options(),
    )
    if session.refresh_token:
        response.set_cookie(
            config.PROVIDER_REFRESH_COOKIE,
            session.refresh_token,
            max_age=PROVIDER_REFRESH_MAX_AGE,
            path="/",
            **_cookie_options(),
        )


def clear_auth_cookies(response: Response) -> None:
    options = _cookie_options()
    response.delete_cookie(config.ACCESS_TOKEN_COOKIE, path="/", **options)
    response.delete_cookie(config.REFRESH_TOKEN_COOKIE, path=config.REFRESH_TOKEN_COOKIE_PATH, **options)
    response.delete_cookie(config.PROVIDER_ACCESS_COOKIE, path="/", **options)
    response.delete_cookie(config.PROVIDER_REFRESH_COOKIE, path="/", **options)
