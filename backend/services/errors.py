"""Domain error taxonomy.

Services raise these; the API layer maps each class to an HTTP status via
``HTTP_STATUS_BY_ERROR``. Anything else escaping a handler is a 500.
"""

from __future__ import annotations

from typing import Any


class BlogError(Exception):
    """Base class for all expected application failures."""

    default_message = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BlogError):
    default_message = "Invalid request"


class AuthenticationError(BlogError):
    default_message = "Not authorized"


class MissingTokenError(AuthenticationError):
    default_message = "Not authorized, no token provided."


class InvalidTokenError(AuthenticationError):
    default_message = "Not authorized, token invalid."


class ForbiddenError(BlogError):
    default_message = "You are not allowed to modify this resource"


class NotFoundError(BlogError):
    default_message = "Resource not found"


class ConflictError(BlogError):
    default_message = "Resource already exists"


class PayloadTooLargeError(BlogError):
    default_message = "Uploaded file is too large"


class IdentityError(BlogError):
    """External profile cannot be mapped to a local user (no email)."""

    default_message = "Email not found in external profile"


class IncompleteIdentityError(BlogError):
    """A token was requested for a user record without id or email."""

    default_message = "Incomplete user data for token"


class ConfigurationError(BlogError):
    default_message = "Server configuration error"


class InternalError(BlogError):
    default_message = "Internal server error"


HTTP_STATUS_BY_ERROR: tuple[tuple[type[BlogError], int], ...] = (
    (ValidationError, 400),
    (IdentityError, 400),
    (AuthenticationError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PayloadTooLargeError, 413),
    (IncompleteIdentityError, 500),
    (ConfigurationError, 500),
    (InternalError, 500),
)


def status_code_for(error: BlogError) -> int:
    for error_type, status_code in HTTP_STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500
