"""
Custom exception classes for the notification relay.

Every exception raised across the control plane derives from AppException,
which carries the HTTP status the control API maps it to. Bind conflicts are
not exceptions: ``try_bind`` and friends report them as ``False``.
"""


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    Attributes:
        message: Human-readable error message.
        http_status: HTTP status code for control-plane responses.
    """

    http_status: int = 500

    def __init__(self, message: str):
        """
        Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ValidationError(AppException):
    """
    A required identifier or body field is missing from a control request.

    HTTP Status: 400 Bad Request
    """

    http_status = 400


class AuthError(AppException):
    """
    Shared-secret header is missing or does not match.

    HTTP Status: 401 Unauthorized
    """

    http_status = 401


class UnknownConnectionError(AppException):
    """
    No live transport connection with the given id exists on this instance.

    HTTP Status: 404 Not Found
    """

    http_status = 404


class SlotConflictError(AppException):
    """
    A slot with the same id is already registered for the user.

    HTTP Status: 409 Conflict
    """

    http_status = 409


class StorageError(AppException):
    """
    A connection store round trip failed.

    Raised by the durable backend when the store is unreachable or times
    out. Never retried internally; the caller may retry the whole operation.

    HTTP Status: 503 Service Unavailable
    """

    http_status = 503

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)
