"""
Application error taxonomy.

Services raise these; `projecthub.main` turns them into the
`{"success": false, "error": ...}` envelope with the matching status code.
"""

from __future__ import annotations

from fastapi import status


class AppError(Exception):
    """Base class for errors that map to a client-visible message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(AppError):
    """No valid caller identity."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class AuthorizationError(AppError):
    """
    Caller is identified but may not act on the resource.

    Plain "Forbidden" means no membership at the scope; "Forbidden:
    insufficient role" means a membership exists but its role is too low.
    """

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(AppError):
    """Business rule violation: duplicates, already-accepted, expired, last admin."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Conflict"


class TransientError(AppError):
    """Store or delivery failure. The message is generic; detail goes to the log."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


FORBIDDEN = "Forbidden"
FORBIDDEN_INSUFFICIENT_ROLE = "Forbidden: insufficient role"
