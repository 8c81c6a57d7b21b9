"""
Service error types.

Every failure surfaced to a caller is one of these. The API layer renders them
as ``{"error": {"message": ..., "status": ...}}`` with the HTTP status mirrored.
"""


class ServiceError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message=None, status_code=None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"error": {"message": self.message, "status": self.status_code}}


class Unauthorized(ServiceError):
    """Missing credential (401) or invalid/expired credential (403)."""

    status_code = 401
    default_message = "Access token required"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvalidInput(ServiceError):
    status_code = 400
    default_message = "Invalid input"


class Internal(ServiceError):
    status_code = 500
    default_message = "Internal Server Error"
