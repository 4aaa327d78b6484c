"""
Error taxonomy shared by the store, the repositories and the routers.

Every error carries the HTTP status it maps to; the handlers in main.py turn
them into the {"error": {...}} envelope.
"""

from typing import Any


class APIException(Exception):
    """Base error with a consistent structure."""

    status_code: int = 500
    error_code: str = "INTERNAL"

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(APIException):
    """Payload failed validation; raised before any store mutation."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class BadRequestError(APIException):
    """Malformed query or continuation token."""

    status_code = 400
    error_code = "BAD_REQUEST"


class AuthenticationError(APIException):
    status_code = 401
    error_code = "UNAUTHORIZED"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class NotFoundError(APIException):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found" if identifier is None else f"{resource} not found: {identifier}"
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class ConflictError(APIException):
    """Duplicate id in a partition."""

    status_code = 409
    error_code = "CONFLICT"


class PreconditionFailedError(APIException):
    """Stale concurrency token (etag)."""

    status_code = 412
    error_code = "PRECONDITION_FAILED"


class RateLimitError(APIException):
    """The store throttled the request."""

    status_code = 429
    error_code = "TOO_MANY_REQUESTS"


class InternalError(APIException):
    status_code = 500
    error_code = "INTERNAL"


class ServiceUnavailableError(APIException):
    """A dependency (the store) is unreachable; the message is safe to expose."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"


class RepositoryError(APIException):
    """
    Wraps a failure raised below the repository boundary.

    The status code mirrors the wrapped error when it is part of the taxonomy,
    otherwise it is a plain 500.
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
        if isinstance(cause, APIException):
            self.status_code = cause.status_code
            self.error_code = cause.error_code


class CreationError(RepositoryError):
    pass
