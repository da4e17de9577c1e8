"""
Domain exceptions for Taskhub.

Services raise these; the handlers registered in ``taskhub.main`` turn them
into JSON error bodies with the matching HTTP status.
"""
from fastapi import status


class TaskhubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(TaskhubError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotAuthenticated(TaskhubError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class PermissionDenied(TaskhubError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(TaskhubError):
    status_code = status.HTTP_404_NOT_FOUND
