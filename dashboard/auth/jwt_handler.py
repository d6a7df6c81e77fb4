import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable

import jwt

from dashboard.core import config
from dashboard.core.errors import InvalidToken

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
RESERVED_CLAIMS = {"type", "exp", "iat", "nbf", "jti", "sub"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class RefreshRecord:
    user_id: str
    expires_at: datetime
    claims: dict = field(default_factory=dict)


class RefreshTokenStore:
    """Process-local registry of live refresh token ids.

    Not shared between processes: a multi-instance deployment needs a shared
    backing store for revocations to take effect everywhere.
    """

    def __init__(self):
        self._records: dict[str, RefreshRecord] = {}
        self._lock = Lock()

    def add(self, token_id: str, record: RefreshRecord) -> None:
        with self._lock:
            self._records[token_id] = record

    def get(self, token_id: str) -> RefreshRecord | None:
        with self._lock:
            return self._records.get(token_id)

    def discard(self, token_id: str) -> bool:
        with self._lock:
            return self._records.pop(token_id, None) is not None

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [token_id for token_id, record in self._records.items() if record.expires_at <= now]
            for token_id in expired:
                del self._records[token_id]
        return len(expired)

    def __contains__(self, token_id: str) -> bool:
        with self._lock:
            return token_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class TokenService:
    """Mints and verifies the access/refresh token pair used by the auth routes."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        store: RefreshTokenStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required.")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must be signed with different secrets.")

        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.store = store if store is not None else RefreshTokenStore()
        self._clock = clock

    @classmethod
    def from_config(cls) -> "TokenService":
        return cls(
            access_secret=config.JWT_SECRET,
            refresh_secret=config.JWT_REFRESH_SECRET,
            algorithm=config.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=config.ACCESS_TOKEN_EXPIRES_MINUTES),
            refresh_ttl=timedelta(days=config.REFRESH_TOKEN_EXPIRES_DAYS),
        )

    def now(self) -> datetime:
        return self._clock()

    def create_access_token(self, claims: dict) -> str:
        user_id = claims.get("id")
        if not user_id:
            raise ValueError("Access token claims must include the user id.")

        issued_at = self.now()
        payload = {key: value for key, value in claims.items() if key not in RESERVED_CLAIMS}
        payload.update(
            {
                "sub": str(user_id),
                "type": ACCESS_TOKEN_TYPE,
                "iat": int(issued_at.timestamp()),
                "exp": int((issued_at + self.access_ttl).timestamp()),
            }
        )
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def issue_token_pair(self, claims: dict) -> TokenPair:
        access_token = self.create_access_token(claims)

        issued_at = self.now()
        expires_at = issued_at + self.refresh_ttl
        token_id = str(uuid.uuid4())
        user_id = str(claims["id"])
        refresh_token = jwt.encode(
            {
                "sub": user_id,
                "id": user_id,
                "jti": token_id,
                "type": REFRESH_TOKEN_TYPE,
                "iat": int(issued_at.timestamp()),
                "exp": int(expires_at.timestamp()),
            },
            self.refresh_secret,
            algorithm=self.algorithm,
        )

        self.store.purge_expired(issued_at)
        self.store.add(
            token_id,
            RefreshRecord(
                user_id=user_id,
                expires_at=expires_at,
                claims={key: value for key, value in claims.items() if key not in RESERVED_CLAIMS},
            ),
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def _decode(self, token: str, secret: str, expected_type: str, check_expiry: bool = True) -> dict:
        if not token:
            raise InvalidToken()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as exc:
            raise InvalidToken() from exc

        if payload.get("type") != expected_type:
            raise InvalidToken("Wrong token type")
        if check_expiry and payload["exp"] <= self.now().timestamp():
            raise InvalidToken("Token has expired")
        return payload

    def verify_access_token(self, token: str) -> dict:
        return self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict:
        return self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)

    def refresh_access_token(
        self,
        refresh_token: str,
        load_claims: Callable[[str], dict | None] | None = None,
    ) -> str:
        """Mint a new access token from a live refresh token.

        Without `load_claims` the token repeats the claims recorded at login.
        With it, claims are reloaded for the user id and stored on the
        refresh record; a loader returning None revokes the refresh token.
        """
        payload = self.verify_refresh_token(refresh_token)
        token_id = payload.get("jti")
        record = self.store.get(token_id) if token_id else None
        if record is None:
            raise InvalidToken("Refresh token has been revoked")

        if record.expires_at <= self.now():
            self.store.discard(token_id)
            raise InvalidToken("Refresh token has expired")

        if load_claims is not None:
            fresh_claims = load_claims(record.user_id)
            if fresh_claims is None:
                self.store.discard(token_id)
                raise InvalidToken("User no longer exists")
            record.claims = {key: value for key, value in fresh_claims.items() if key not in RESERVED_CLAIMS}

        claims = dict(record.claims)
        claims.setdefault("id", record.user_id)
        return self.create_access_token(claims)

    def read_refresh_token_id(self, refresh_token: str) -> str | None:
        try:
            payload = self._decode(refresh_token, self.refresh_secret, REFRESH_TOKEN_TYPE, check_expiry=False)
        except InvalidToken:
            return None
        return payload.get("jti")

    def invalidate_refresh_token(self, refresh_token: str) -> bool:
        token_id = self.read_refresh_token_id(refresh_token)
        if token_id is None:
            logger.info("Ignoring logout for an unreadable refresh token")
            return False
        return self.store.discard(token_id)
