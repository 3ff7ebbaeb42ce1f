"""Domain errors raised by Cramr services and rendered by the API."""

from __future__ import annotations


class CramrError(Exception):
    """Base error carrying the HTTP status the API should answer with."""

    status_code = 500

    def __init__(self, message: str, *, extra: dict | None = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationError(CramrError):
    """Missing or invalid fields, or a self-targeted action."""

    status_code = 400


class AuthenticationError(CramrError):
    status_code = 401


class ForbiddenError(CramrError):
    """Blocked relationship or a write by someone who does not own the row."""

    status_code = 403


class NotFoundError(CramrError):
    status_code = 404


class ConflictError(CramrError):
    """Duplicate follow, block or account."""

    status_code = 409
