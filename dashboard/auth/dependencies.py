from dataclasses import dataclass, field
from typing import Mapping

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from dashboard.auth.identity import IdentityProviderClient
from dashboard.auth.jwt_handler import TokenService
from dashboard.core import config
from dashboard.core.errors import InvalidToken, PendingApproval, Unauthorized
from dashboard.database import get_db
from dashboard.feeds.client import DataFeedClient
from dashboard.models.user import User

SOURCE_PROVIDER = "provider"
SOURCE_TOKEN = "token"


@dataclass
class Identity:
    user_id: str
    source: str
    claims: dict = field(default_factory=dict)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_identity_client(request: Request) -> IdentityProviderClient:
    return request.app.state.identity_client


def get_feed_client(request: Request) -> DataFeedClient:
    return request.app.state.feed_client


def bearer_token(headers: Mapping[str, str]) -> str | None:
    scheme, _, credentials = (headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def resolve_identity(
    headers: Mapping[str, str],
    cookies: Mapping[str, str],
    token_service: TokenService,
    identity_client: IdentityProviderClient,
) -> Identity | None:
    """Work out who is calling, or return None.

    The provider session cookie is authoritative. The signed `token` cookie
    (or an `Authorization: Bearer` header carrying the same token) is only
    consulted when there is no provider session.
    """
    session = identity_client.get_session(cookies.get(config.PROVIDER_ACCESS_COOKIE))
    if session is not None:
        return Identity(user_id=session.user_id, source=SOURCE_PROVIDER, claims={"email": session.email})

    token = bearer_token(headers) or cookies.get(config.ACCESS_TOKEN_COOKIE)
    if not token:
        return None
    try:
        claims = token_service.verify_access_token(token)
    except InvalidToken:
        return None
    return Identity(user_id=str(claims.get("id") or claims["sub"]), source=SOURCE_TOKEN, claims=claims)


def get_current_identity(
    request: Request,
    token_service: TokenService = Depends(get_token_service),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
) -> Identity:
    identity = resolve_identity(request.headers, request.cookies, token_service, identity_client)
    if identity is None:
        raise InvalidToken("Not authenticated")
    return identity


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    db: Session = Depends(get_db),
) -> User:
    user = identity_client.get_user_record(db, identity.user_id)
    if user is None:
        raise InvalidToken("User not found")
    if not user.is_verified:
        raise PendingApproval()
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise Unauthorized("Admin access required")
    return current_user
