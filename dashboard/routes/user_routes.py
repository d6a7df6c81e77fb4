import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from dashboard.auth.dependencies import get_current_user, get_identity_client, require_admin
from dashboard.auth.identity import IdentityProviderClient
from dashboard.core import config
from dashboard.core.errors import BadRequest, InvalidToken, NotFound, Unauthorized
from dashboard.database import get_db
from dashboard.models.user import ROLE_USER, ROLES, User

router = APIRouter(tags=["users"])
admin_router = APIRouter(tags=["admin"])

logger = logging.getLogger(__name__)

OWNER_FIELDS = {"name", "password"}
ADMIN_FIELDS = {"name", "email", "role", "is_verified"}


class UpdateUserRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    role: str | None = None
    is_verified: bool | None = None
    password: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else value

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str | None) -> str | None:
        if value is not None and value not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return value


class CreateUserRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    role: str = ROLE_USER
    is_verified: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return (value or "").strip().lower()

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        if value not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return value


class VerifyUserRequest(BaseModel):
    userId: str = ""


def _user_list(identity_client: IdentityProviderClient, db: Session) -> dict:
    return {"users": [user.to_dict() for user in identity_client.list_user_records(db)]}


@router.get("")
def list_users(
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    _admin: User = Depends(require_admin),
):
    return _user_list(identity_client, db)


@router.get("/{user_id}")
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    current_user: User = Depends(get_current_user),
):
    if not current_user.is_admin and current_user.id != user_id:
        raise Unauthorized()

    user = identity_client.get_user_record(db, user_id)
    if user is None:
        raise NotFound("User not found")
    return {"user": user.to_dict()}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    data: UpdateUserRequest,
    request: Request,
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    current_user: User = Depends(get_current_user),
):
    changes = data.model_dump(exclude_none=True)
    is_owner = current_user.id == user_id
    if not current_user.is_admin and not is_owner:
        raise Unauthorized()

    allowed = (ADMIN_FIELDS if current_user.is_admin else set()) | (OWNER_FIELDS if is_owner else set())
    forbidden = set(changes) - allowed
    if forbidden:
        raise Unauthorized(f"Not allowed to change: {', '.join(sorted(forbidden))}")
    if not changes:
        raise BadRequest("No changes provided")

    password = changes.pop("password", None)
    if password:
        provider_token = request.cookies.get(config.PROVIDER_ACCESS_COOKIE)
        if not provider_token:
            raise InvalidToken("Sign in again to change your password")
        identity_client.update_password(provider_token, password)
        logger.info("Password changed for user %s", user_id)

    if changes:
        user = identity_client.update_user_record(db, user_id, changes)
    else:
        user = identity_client.get_user_record(db, user_id)
        if user is None:
            raise NotFound("User not found")
    return {"user": user.to_dict()}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    admin: User = Depends(require_admin),
):
    if user_id == admin.id:
        raise BadRequest("Cannot delete your own account")

    report = identity_client.delete_user_record(db, user_id)
    if not report.completed:
        logger.error("User %s only partially deleted via %s: %s", user_id, report.path, report.errors)
        return JSONResponse(
            {"message": "User deletion did not complete", "deletion": report.to_dict()},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.info("Admin %s deleted user %s via %s", admin.id, user_id, report.path)
    return {"message": "User deleted successfully", "deletion": report.to_dict()}


@admin_router.get("/users")
def admin_list_users(
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    _admin: User = Depends(require_admin),
):
    return _user_list(identity_client, db)


@admin_router.post("/users", status_code=status.HTTP_201_CREATED)
def admin_create_user(
    data: CreateUserRequest,
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    admin: User = Depends(require_admin),
):
    if not data.name.strip() or not data.email or not data.password:
        raise BadRequest("Missing required fields")

    user = identity_client.create_user(
        db,
        data.name.strip(),
        data.email,
        data.password,
        role=data.role,
        is_verified=data.is_verified,
    )
    logger.info("Admin %s created user %s", admin.id, user.id)
    return {"message": "User created successfully", "user": user.to_dict()}


@admin_router.post("/verify-user")
def verify_user(
    data: VerifyUserRequest,
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
    admin: User = Depends(require_admin),
):
    if not data.userId:
        raise BadRequest("User ID is required")

    user, already_verified = identity_client.verify_user(db, data.userId)
    if already_verified:
        return {"message": "User is already verified", "user": user.to_dict(), "already_verified": True}

    logger.info("Admin %s verified user %s", admin.id, user.id)
    return {"message": "User verified successfully", "user": user.to_dict(), "already_verified": False}
