# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Error taxonomy and the single boundary that turns errors into HTTP responses.

Services and gates raise the typed errors below and never touch the
transport.  ``register_error_handlers`` maps every error kind to its status
code and the uniform body ``{"success": false, "message": "..."}``.

    AuthenticationError  401   token / account / session problems
    AuthorizationError   403   missing permission or role
    ValidationError      400   bad input
    NotFoundError        404   role / user / session absent
    ConflictError        409   duplicates; some subclasses answer 400
    InternalError        500   unexpected faults, generic message
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logger import logger


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


# -- 401 ----------------------------------------------------------------------


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication failed"


class MissingToken(AuthenticationError):
    message = "Access token is required"


class TokenExpired(AuthenticationError):
    message = "Token has expired"


class InvalidToken(AuthenticationError):
    message = "Invalid token"


class UserNotFound(AuthenticationError):
    message = "User not found"


class AccountDeactivated(AuthenticationError):
    message = "Account is deactivated"


class AccountLocked(AuthenticationError):
    message = "Account is locked due to multiple failed login attempts"


class SessionInvalid(AuthenticationError):
    message = "Session expired or invalid"


class AuthenticationRequired(AuthenticationError):
    message = "Authentication required"


class InvalidCredentials(AuthenticationError):
    message = "Invalid credentials"


# -- 403 ----------------------------------------------------------------------


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Access forbidden"


class InsufficientPermissions(AuthorizationError):
    message = "Insufficient permissions"


# -- 400 ----------------------------------------------------------------------


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"


class InvalidPermission(ValidationError):
    message = "One or more permissions are invalid"


# -- 404 ----------------------------------------------------------------------


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class RoleNotFound(NotFoundError):
    message = "Role not found"


class AccountNotFound(NotFoundError):
    message = "User not found"


class SessionNotFound(NotFoundError):
    message = "Session not found"


# -- 409 ----------------------------------------------------------------------


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    message = "Resource conflict"


class DuplicateRole(ConflictError):
    message = "Role name already exists"


class DuplicateUser(ConflictError):
    message = "Email or username already exists"


class RoleInUse(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Role is assigned to active users"


class CannotModifyDefault(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Cannot modify default system roles"


# -- 500 ----------------------------------------------------------------------


class InternalError(AppError):
    pass


class AuthenticationFailed(InternalError):
    message = "Authentication failed"


class AuthorizationFailed(InternalError):
    message = "Authorization failed"


# ---------------------------------------------------------------------------
# Boundary
# ---------------------------------------------------------------------------


def _error_body(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_error_handlers(app: FastAPI) -> None:
    """Install the error → response mapping on *app*."""

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s | %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
        return _error_body(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return _error_body(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error_body(status.HTTP_400_BAD_REQUEST, "; ".join(parts) or "Validation failed")

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
