"""Typed outcomes raised by the services.

Routers never build HTTP errors for these by hand; ``main.py`` maps every
``SchoolCRMError`` subclass to its status code.
"""
from fastapi import status


class SchoolCRMError(Exception):
    """Base exception for SchoolCRM."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class Unauthenticated(SchoolCRMError):
    """No resolvable identity."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class Forbidden(SchoolCRMError):
    """Identity resolved but lacks the required role, ownership or power."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFound(SchoolCRMError):
    """Referenced entity does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class InvalidState(SchoolCRMError):
    """Action is not legal from the entity's current state."""
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class ReviewNotRequired(InvalidState):
    """Submission attempted on a task that does not require review."""
    code = "review_not_required"

    def __init__(self, message: str = "Review is not required for this task"):
        super().__init__(message)


class Conflict(SchoolCRMError):
    """A concurrent transition won the race; re-read and retry."""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"

    def __init__(self, message: str = "The record was changed by another request"):
        super().__init__(message)


class LookupFailed(SchoolCRMError):
    """The data store or identity provider is unavailable."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "lookup_failed"

    def __init__(self, message: str = "Data store unavailable"):
        super().__init__(message)


class ValidationFailed(SchoolCRMError):
    """Raised when input validation fails."""
    code = "validation_failed"
