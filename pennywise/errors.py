from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures reported back to callers as a result message."""

    code = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(ServiceError):
    """Raised when no current user can be resolved for the call."""

    code = "unauthenticated"


class InvalidArgument(ServiceError):
    code = "invalid_argument"


class NotFound(ServiceError):
    """Raised when an id does not resolve under the caller's ownership scope."""

    code = "not_found"


class Conflict(ServiceError):
    """Raised for duplicate names and for deletes blocked by references."""

    code = "conflict"


def get_error_message(error: object, default: str | None = None) -> str:
    message = default or "Something went wrong"
    if isinstance(error, ServiceError):
        return error.message
    if isinstance(error, BaseException):
        text = str(error)
        return text or message
    if isinstance(error, str) and error:
        return error
    candidate = getattr(error, "message", None)
    if isinstance(candidate, str) and candidate:
        return candidate
    return message
