import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dashboard.core.errors import DashboardError, ErrorKind

logger = logging.getLogger(__name__)

# Routes with these tags answer with {"error": ...}; everything else uses {"message": ...}.
ERROR_KEY_TAGS = {"data", "downloads"}


def _message_key(request: Request) -> str:
    route = request.scope.get("route")
    tags = set(getattr(route, "tags", None) or [])
    return "error" if tags & ERROR_KEY_TAGS else "message"


def error_body(request: Request, message: str, kind: ErrorKind | None = None) -> dict:
    body = {_message_key(request): message}
    if kind == ErrorKind.PENDING_APPROVAL:
        body["status"] = "pending_approval"
    return body


async def dashboard_error_handler(request: Request, exc: DashboardError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind.value)
    return JSONResponse(status_code=exc.status_code, content=error_body(request, exc.message, exc.kind))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field_name = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    if field_name:
        message = f"{field_name}: {message}"
    return JSONResponse(status_code=400, content=error_body(request, message))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error during %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body(request, "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
