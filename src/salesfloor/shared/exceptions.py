"""
Shared domain exceptions.

Each error carries a stable machine-readable ``code``; the HTTP layer maps
the class to a status code (see ``salesfloor.main``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional


@dataclass(eq=False)
class AppError(Exception):
    message: str = "Application error"
    details: Optional[dict[str, Any]] = None

    code: ClassVar[str] = "APP_ERROR"

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload.update(self.details)
        return payload


class NotFoundError(AppError):
    """Referenced prospect, call attempt or list is absent."""

    code: ClassVar[str] = "NOT_FOUND"


class ValidationError(AppError):
    code: ClassVar[str] = "VALIDATION_ERROR"


class ForbiddenError(AppError):
    code: ClassVar[str] = "FORBIDDEN"


class ConflictError(AppError):
    """Admission failure: the prospect cannot be called right now."""

    code: ClassVar[str] = "CONFLICT"


class InvalidStateError(AppError):
    """Illegal state transition, e.g. ending a call twice."""

    code: ClassVar[str] = "INVALID_STATE"


class TransientStorageError(AppError):
    """Storage-level failure; safe for the caller to retry."""

    code: ClassVar[str] = "STORAGE_UNAVAILABLE"


class InvalidTokenError(AppError):
    code: ClassVar[str] = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, details=details)


class TokenExpiredError(AppError):
    code: ClassVar[str] = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token has expired", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, details=details)
