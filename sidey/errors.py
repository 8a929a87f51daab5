"""
Error taxonomy shared by the resource, account and blob layers.

Every error carries the HTTP status it maps to and a message that is safe to
return to the client. The application renders them as ``{"error": message}``.
"""

from __future__ import annotations


class SideyError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SideyError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(ValidationError):
    """Uniqueness violation; reported with the same shape as a validation error."""

    default_message = "Already exists"


class Unauthenticated(SideyError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(SideyError):
    status_code = 403
    default_message = "Unauthorized"


class NotFound(SideyError):
    status_code = 404
    default_message = "Not Found"


class MethodNotAllowed(SideyError):
    status_code = 405
    default_message = "Method not allowed"


class InternalError(SideyError):
    status_code = 500
