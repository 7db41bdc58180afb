"""
Domain-level failures raised by services and mapped to HTTP statuses.
"""
from fastapi import status


class DomainError(Exception):
    """A request that cannot be fulfilled for a business reason."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailedError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
