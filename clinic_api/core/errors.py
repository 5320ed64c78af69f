"""Error taxonomy shared by services and routers.

Services raise these; ``main.py`` renders them as ``{"detail", "code"}`` JSON
with the matching HTTP status.
"""

from typing import Any


class AppError(Exception):
    """Base exception for API-visible errors."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "internal server error"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "bad request"


class UnauthenticatedError(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "authentication required"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "insufficient permissions"


class NotFoundError(AppError):
    """Entity absent, or owned by another clinic (indistinguishable on purpose)."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "conflict"


class TooManyAttemptsError(AppError):
    status_code = 429
    code = "TOO_MANY_ATTEMPTS"
    default_message = "too many login attempts, try again later"


class ValidationFailedError(AppError):
    """Schema-level field violations with a field-keyed detail map."""

    status_code = 422
    code = "VALIDATION_ERROR"
    default_message = "validation failed"

    def __init__(self, message: str | None = None, errors: dict[str, Any] | None = None):
        super().__init__(message)
        self.errors = errors or {}


class InternalError(AppError):
    pass
