"""Adapter over the hosted identity provider.

Authentication calls go to the provider's REST auth API over httpx; the
`users` profile table lives in the provider's Postgres database and is
reached through SQLAlchemy. Provider failures are classified once, in
`classify_provider_error`, so callers only ever see `DashboardError` kinds.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dashboard import database
from dashboard.core import config
from dashboard.core.errors import (
    BadRequest,
    Conflict,
    DashboardError,
    ErrorKind,
    NotFound,
    PendingApproval,
    SystemFailure,
    UpstreamFailure,
    error_for_kind,
)
from dashboard.models.user import ROLE_USER, ROLES, User

logger = logging.getLogger(__name__)

ERROR_CODE_KINDS = {
    "invalid_credentials": ErrorKind.INVALID_CREDENTIALS,
    "email_not_confirmed": ErrorKind.EMAIL_NOT_CONFIRMED,
    "user_already_exists": ErrorKind.CONFLICT,
    "email_exists": ErrorKind.CONFLICT,
    "bad_jwt": ErrorKind.INVALID_TOKEN,
    "no_authorization": ErrorKind.INVALID_TOKEN,
    "session_not_found": ErrorKind.INVALID_TOKEN,
    "session_expired": ErrorKind.INVALID_TOKEN,
    "refresh_token_not_found": ErrorKind.INVALID_TOKEN,
    "refresh_token_already_used": ErrorKind.INVALID_TOKEN,
    "user_not_found": ErrorKind.NOT_FOUND,
    "weak_password": ErrorKind.BAD_REQUEST,
    "validation_failed": ErrorKind.BAD_REQUEST,
    "email_address_invalid": ErrorKind.BAD_REQUEST,
}

MESSAGE_KINDS = (
    ("email not confirmed", ErrorKind.EMAIL_NOT_CONFIRMED),
    ("invalid login credentials", ErrorKind.INVALID_CREDENTIALS),
    ("already registered", ErrorKind.CONFLICT),
    ("user not found", ErrorKind.NOT_FOUND),
    ("invalid refresh token", ErrorKind.INVALID_TOKEN),
)

USER_FACING_KINDS = {ErrorKind.BAD_REQUEST}
PROFILE_FIELDS = {"name", "email", "role", "is_verified"}


def classify_provider_error(status_code: int, payload: dict) -> ErrorKind:
    code = payload.get("error_code") or payload.get("error")
    message = str(
        payload.get("msg") or payload.get("message") or payload.get("error_description") or ""
    ).lower()

    if code in ERROR_CODE_KINDS:
        return ERROR_CODE_KINDS[code]
    for fragment, kind in MESSAGE_KINDS:
        if fragment in message:
            return kind
    if code == "invalid_grant":
        return ErrorKind.INVALID_CREDENTIALS
    if status_code in (401, 403):
        return ErrorKind.INVALID_TOKEN
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (400, 422):
        return ErrorKind.BAD_REQUEST
    return ErrorKind.SYSTEM_ERROR


def _provider_message(payload: dict) -> str | None:
    return payload.get("msg") or payload.get("message") or payload.get("error_description")


@dataclass
class ProviderSession:
    user_id: str
    email: str | None
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "ProviderSession":
        user = payload.get("user") or {}
        expires_at = None
        if payload.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(payload["expires_at"]), tz=timezone.utc)
        elif payload.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(payload["expires_in"]))
        return cls(
            user_id=str(user.get("id", "")),
            email=user.get("email"),
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
        )

    @property
    def max_age(self) -> int | None:
        if self.expires_at is None:
            return None
        return max(0, int((self.expires_at - datetime.now(timezone.utc)).total_seconds()))


@dataclass
class SignInResult:
    session: ProviderSession
    user: User


@dataclass
class DeletionReport:
    user_id: str
    path: str = ""
    auth_deleted: bool = False
    profile_deleted: bool = False
    completed: bool = False
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "path": self.path,
            "authDeleted": self.auth_deleted,
            "profileDeleted": self.profile_deleted,
            "completed": self.completed,
            "errors": list(self.errors),
        }


class IdentityProviderClient:
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_role_key: str,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.http = http_client or httpx.Client(base_url=base_url, timeout=timeout)

    @classmethod
    def from_config(cls) -> "IdentityProviderClient":
        return cls(
            base_url=config.SUPABASE_URL,
            anon_key=config.SUPABASE_ANON_KEY,
            service_role_key=config.SUPABASE_SERVICE_ROLE_KEY,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        self.http.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: str | None = None,
        service: bool = False,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        key = self.service_role_key if service else self.anon_key
        headers = {"apikey": key, "Authorization": f"Bearer {bearer or key}"}
        try:
            response = self.http.request(method, path, headers=headers, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.exception("Identity provider request failed: %s %s", method, path)
            raise SystemFailure("Authentication service unavailable. Please try again.") from exc

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}

        if response.is_error:
            kind = classify_provider_error(response.status_code, payload if isinstance(payload, dict) else {})
            logger.info("Identity provider rejected %s %s: %s (%s)", method, path, response.status_code, kind.value)
            message = _provider_message(payload) if kind in USER_FACING_KINDS else None
            raise error_for_kind(kind, message)
        return payload if isinstance(payload, dict) else {"data": payload}

    # Sessions

    def get_session(self, access_token: str | None) -> ProviderSession | None:
        if not access_token:
            return None
        try:
            user = self._request("GET", "/auth/v1/user", bearer=access_token)
        except DashboardError as exc:
            logger.info("Provider session lookup failed: %s", exc.kind.value)
            return None
        except Exception:
            logger.exception("Unexpected error during provider session lookup")
            return None
        if not user.get("id"):
            return None
        return ProviderSession(user_id=str(user["id"]), email=user.get("email"), access_token=access_token)

    def refresh_session(self, refresh_token: str | None) -> ProviderSession | None:
        if not refresh_token:
            return None
        try:
            payload = self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
            )
            return ProviderSession.from_payload(payload)
        except DashboardError as exc:
            logger.info("Provider session refresh failed: %s", exc.kind.value)
        except (KeyError, ValueError):
            logger.exception("Malformed provider session payload")
        return None

    def sign_out(self, access_token: str | None) -> bool:
        if not access_token:
            return False
        try:
            self._request("POST", "/auth/v1/logout", bearer=access_token)
        except DashboardError as exc:
            logger.info("Provider sign-out failed: %s", exc.kind.value)
            return False
        return True

    # Credentials

    def sign_in(self, db: Session, email: str, password: str) -> SignInResult:
        payload = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        try:
            session = ProviderSession.from_payload(payload)
        except (KeyError, ValueError) as exc:
            logger.exception("Malformed provider session payload during sign-in")
            raise SystemFailure("Login failed. Please try again.") from exc

        user = self.get_user_record(db, session.user_id)
        if user is None and session.email:
            user = self.get_user_record_by_email(db, session.email)

        if user is not None and user.is_verified is None:
            logger.info("Repairing missing verification flag for user %s", user.id)
            user = self.update_user_record(db, user.id, {"is_verified": True})

        if user is None or not user.is_verified:
            self.sign_out(session.access_token)
            raise PendingApproval()

        return SignInResult(session=session, user=user)

    def sign_up(self, db: Session, name: str, email: str, password: str) -> User:
        if self.get_user_record_by_email(db, email) is not None:
            raise Conflict("User already exists")

        payload = self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"name": name}},
        )
        provider_user = payload.get("user") or payload
        return self._insert_profile(db, provider_user.get("id"), name, email, ROLE_USER, False)

    def create_user(
        self,
        db: Session,
        name: str,
        email: str,
        password: str,
        role: str = ROLE_USER,
        is_verified: bool = False,
    ) -> User:
        if role not in ROLES:
            raise BadRequest(f"Unknown role: {role}")
        if self.get_user_record_by_email(db, email) is not None:
            raise Conflict("User already exists")

        provider_user = self._request(
            "POST",
            "/auth/v1/admin/users",
            service=True,
            json={"email": email, "password": password, "email_confirm": True, "user_metadata": {"name": name}},
        )
        return self._insert_profile(db, provider_user.get("id"), name, email, role, is_verified)

    def _insert_profile(
        self,
        db: Session,
        provider_id: str | None,
        name: str,
        email: str,
        role: str,
        is_verified: bool,
    ) -> User:
        if not provider_id:
            raise SystemFailure("Identity provider did not return a user id.")

        user = User(id=str(provider_id), name=name, email=email, role=role, is_verified=is_verified)
        try:
            db.add(user)
            db.commit()
            db.refresh(user)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Profile insert failed; provider account %s has no profile row", provider_id)
            raise SystemFailure("Failed to create user profile.") from exc
        return user

    def update_password(self, access_token: str, password: str) -> None:
        self._request("PUT", "/auth/v1/user", bearer=access_token, json={"password": password})

    # Profile table

    def list_user_records(self, db: Session) -> list[User]:
        return db.query(User).order_by(User.created_at.desc()).all()

    def get_user_record(self, db: Session, user_id: str) -> User | None:
        if not user_id:
            return None
        return db.query(User).filter(User.id == str(user_id)).first()

    def get_user_record_by_email(self, db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == email).first()

    def update_user_record(self, db: Session, user_id: str, patch: dict) -> User:
        user = self.get_user_record(db, user_id)
        if user is None:
            raise NotFound("User not found")

        unknown = set(patch) - PROFILE_FIELDS
        if unknown:
            raise BadRequest(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "role" in patch and patch["role"] not in ROLES:
            raise BadRequest(f"Unknown role: {patch['role']}")

        for field_name, value in patch.items():
            setattr(user, field_name, value)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise Conflict("Email is already in use") from exc
        db.refresh(user)
        return user

    def verify_user(self, db: Session, user_id: str) -> tuple[User, bool]:
        user = self.get_user_record(db, user_id)
        if user is None:
            raise NotFound("User not found")
        if user.is_verified:
            return user, True
        return self.update_user_record(db, user_id, {"is_verified": True}), False

    def _auth_record_exists(self, user_id: str) -> bool:
        try:
            self._request("GET", f"/auth/v1/admin/users/{user_id}", service=True)
        except NotFound:
            return False
        return True

    def delete_user_record(self, db: Session, user_id: str) -> DeletionReport:
        """Delete a user from the credential store and the profile table.

        Tries the atomic server-side function first, then the admin API
        followed by a profile delete, and finally a profile-only delete when
        the credential store has no such user.
        """
        report = DeletionReport(user_id=user_id)
        profile = self.get_user_record(db, user_id)

        if profile is not None:
            try:
                if database.delete_user_complete(db, user_id):
                    report.path = "rpc"
                    report.auth_deleted = report.profile_deleted = report.completed = True
                    return report
                report.errors.append("rpc: server-side delete reported failure")
            except SQLAlchemyError as exc:
                db.rollback()
                logger.info("Server-side user delete unavailable for %s: %s", user_id, exc.__class__.__name__)
                report.errors.append("rpc: server-side delete unavailable")

        try:
            auth_exists = self._auth_record_exists(user_id)
        except DashboardError as exc:
            raise UpstreamFailure("Could not reach the identity provider to delete the user.") from exc

        if not auth_exists and profile is None:
            raise NotFound("User not found")

        if auth_exists:
            report.path = "admin_api"
            try:
                self._request("DELETE", f"/auth/v1/admin/users/{user_id}", service=True)
                report.auth_deleted = True
            except DashboardError as exc:
                report.errors.append(f"auth: {exc.message}")
                return report
        else:
            report.path = "profile_only"

        if profile is not None:
            try:
                db.delete(profile)
                db.commit()
                report.profile_deleted = True
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Profile delete failed for user %s", user_id)
                report.errors.append("profile: delete failed")
                return report

        report.completed = True
        return report
