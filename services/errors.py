"""
Data Access Errors
Typed failure kinds raised by data stores and surfaced by the services
"""

from typing import Optional


class DataStoreError(Exception):
    """Base class for every data-access failure"""

    status_code: int = 500
    user_message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message
        self.code = code


class ValidationError(DataStoreError):
    """Bad input the user can correct"""
    status_code = 422
    user_message = "Invalid input"


class AuthError(DataStoreError):
    """Session missing, invalid or expired; never retried"""
    status_code = 401
    user_message = "Session expired. Please log in again."


class NotFoundError(DataStoreError):
    status_code = 404
    user_message = "Resource not found"


class NotFoundOrAccessDenied(NotFoundError):
    """Ownership violation; reported exactly like a missing record"""
    user_message = "Medication not found or access denied"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        # Never echo details that could reveal another user's records
        super().__init__(self.user_message, code)


class ConflictError(DataStoreError):
    status_code = 409
    user_message = "This record already exists"


class ReferentialError(DataStoreError):
    status_code = 409
    user_message = "Cannot delete this record as it is referenced by other data"


class NetworkError(DataStoreError):
    status_code = 503
    user_message = "Could not reach the data service"
    retryable = True


class BackendError(DataStoreError):
    status_code = 502
    user_message = "The data service returned an error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        retryable: bool = False
    ):
        super().__init__(message, code)
        self.retryable = retryable


__all__ = [
    "DataStoreError",
    "ValidationError",
    "AuthError",
    "NotFoundError",
    "NotFoundOrAccessDenied",
    "ConflictError",
    "ReferentialError",
    "NetworkError",
    "BackendError",
]
