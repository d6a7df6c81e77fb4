"""Error kinds shared by the auth, user and data layers.

Everything that crosses a boundary (identity provider, data feed, token
verification) is converted into one of these kinds before it reaches a
route handler.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "InvalidCredentials"
    EMAIL_NOT_CONFIRMED = "EmailNotConfirmed"
    PENDING_APPROVAL = "PendingApproval"
    INVALID_TOKEN = "InvalidToken"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    UPSTREAM_FAILURE = "UpstreamFailure"
    SYSTEM_ERROR = "SystemError"
    BAD_REQUEST = "BadRequest"
    CONFLICT = "Conflict"


STATUS_CODES = {
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.EMAIL_NOT_CONFIRMED: 403,
    ErrorKind.PENDING_APPROVAL: 403,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UPSTREAM_FAILURE: 500,
    ErrorKind.SYSTEM_ERROR: 500,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.CONFLICT: 409,
}


class DashboardError(Exception):
    kind = ErrorKind.SYSTEM_ERROR
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        self.status_code = status_code or STATUS_CODES[self.kind]
        super().__init__(self.message)


class InvalidCredentials(DashboardError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid credentials"


class EmailNotConfirmed(DashboardError):
    kind = ErrorKind.EMAIL_NOT_CONFIRMED
    default_message = "Please confirm your email address before logging in."


class PendingApproval(DashboardError):
    """Informational: the account exists but an admin has not verified it yet."""

    kind = ErrorKind.PENDING_APPROVAL
    default_message = "Your account is pending approval. Please try again later."


class InvalidToken(DashboardError):
    kind = ErrorKind.INVALID_TOKEN
    default_message = "Invalid or expired token"


class Unauthorized(DashboardError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Unauthorized"


class NotFound(DashboardError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class UpstreamFailure(DashboardError):
    kind = ErrorKind.UPSTREAM_FAILURE
    default_message = "Failed to fetch data"


class SystemFailure(DashboardError):
    kind = ErrorKind.SYSTEM_ERROR


class BadRequest(DashboardError):
    kind = ErrorKind.BAD_REQUEST
    default_message = "Bad request"


class Conflict(DashboardError):
    kind = ErrorKind.CONFLICT
    default_message = "Conflict"


ERRORS_BY_KIND = {
    error_class.kind: error_class
    for error_class in (
        InvalidCredentials,
        EmailNotConfirmed,
        PendingApproval,
        InvalidToken,
        Unauthorized,
        NotFound,
        UpstreamFailure,
        SystemFailure,
        BadRequest,
        Conflict,
    )
}


def error_for_kind(kind: ErrorKind, message: str | None = None) -> DashboardError:
    return ERRORS_BY_KIND[kind](message)
