"""Custom exception classes for the access core."""

from fastapi import status


class IMSError(Exception):
    """Base exception for the access core.

    ``status_code`` is the HTTP status the API layer renders the error with.
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(IMSError):
    """Raised when no valid identity or session is presented."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(IMSError):
    """Raised when the effective permission set excludes the required key."""
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFoundError(IMSError):
    """Raised when a target does not exist or does not belong to the caller."""
    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(IMSError):
    """Raised when a resource already exists."""
    status_code = status.HTTP_409_CONFLICT


class ValidationError(IMSError):
    """Raised when input validation fails."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class CacheUnavailableError(IMSError):
    """Raised when the cache backend cannot be read or invalidated."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
