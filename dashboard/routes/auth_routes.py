import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from dashboard.auth import cookies
from dashboard.auth.dependencies import get_current_user, get_identity_client, get_token_service
from dashboard.auth.identity import IdentityProviderClient
from dashboard.auth.jwt_handler import TokenService
from dashboard.core import config
from dashboard.core.errors import BadRequest, InvalidToken
from dashboard.database import get_db
from dashboard.models.user import User

router = APIRouter(tags=["auth"])

logger = logging.getLogger(__name__)

PENDING_APPROVAL_STATUS = "pending_approval"


def _normalize_email(value: str) -> str:
    return (value or "").strip().lower()


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class RegisterRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return (value or "").strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class RefreshTokenRequest(BaseModel):
    refreshToken: str | None = None


def token_claims(user: User) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name, "role": user.role}


@router.post("/login")
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
):
    if not data.email or not data.password:
        raise BadRequest("Email and password are required")

    result = identity_client.sign_in(db, data.email, data.password)
    tokens = token_service.issue_token_pair(token_claims(result.user))
    logger.info("User %s logged in", result.user.id)

    response = JSONResponse(
        {
            "message": "Login successful",
            "user": result.user.to_dict(),
            "token": tokens.access_token,
            "refreshToken": tokens.refresh_token,
        }
    )
    response.headers["Authorization"] = f"Bearer {tokens.access_token}"
    cookies.set_token_cookies(response, tokens)
    cookies.set_provider_cookies(response, result.session)
    return response


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
):
    if not data.name or not data.email or not data.password:
        raise BadRequest("Missing required fields")

    user = identity_client.sign_up(db, data.name, data.email, data.password)
    logger.info("Registered user %s pending approval", user.id)
    return {
        "message": "Registration successful. Please wait for admin approval.",
        "status": PENDING_APPROVAL_STATUS,
        "user": user.to_dict(),
    }


@router.post("/refresh")
def refresh(
    request: Request,
    data: RefreshTokenRequest | None = None,
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
):
    refresh_token = request.cookies.get(config.REFRESH_TOKEN_COOKIE) or (data.refreshToken if data else None)
    if not refresh_token:
        raise InvalidToken("Refresh token not provided")

    def load_claims(user_id: str) -> dict | None:
        user = identity_client.get_user_record(db, user_id)
        return token_claims(user) if user is not None else None

    try:
        access_token = token_service.refresh_access_token(refresh_token, load_claims=load_claims)
    except InvalidToken as exc:
        logger.info("Refresh rejected: %s", exc.message)
        raise InvalidToken("Invalid or expired refresh token") from exc

    response = JSONResponse({"message": "Token refreshed successfully", "token": access_token})
    cookies.set_access_cookie(response, access_token)
    return response


@router.post("/logout")
def logout(
    request: Request,
    data: RefreshTokenRequest | None = None,
    token_service: TokenService = Depends(get_token_service),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
):
    # The refresh cookie is scoped to the refresh path, so API clients send it in the body.
    refresh_token = request.cookies.get(config.REFRESH_TOKEN_COOKIE) or (data.refreshToken if data else None)
    if refresh_token:
        token_service.invalidate_refresh_token(refresh_token)
    identity_client.sign_out(request.cookies.get(config.PROVIDER_ACCESS_COOKIE))

    response = JSONResponse({"message": "Logged out successfully"})
    cookies.clear_auth_cookies(response)
    return response


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"user": current_user.to_dict()}
