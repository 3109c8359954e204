"""
Domain exceptions for the expense workflow.

Services raise these for business rule violations; main.py converts them
into HTTP responses (see WorkflowError.status_code).
"""

from typing import Dict, Optional


class WorkflowError(Exception):
    """Base exception for all workflow errors."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowError):
    """Raised when input is missing, malformed or out of range."""
    status_code = 422

    def __init__(self, message: str = "Validation failed", field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.field_errors = field_errors or {}

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: message})


class PermissionDeniedError(WorkflowError):
    """Raised when the actor lacks the capability for the requested transition."""
    status_code = 403


class NotFoundError(WorkflowError):
    """Raised when a referenced project, expense, invitation or user does not exist."""
    status_code = 404


class ConflictError(WorkflowError):
    """Raised when a record is already in a state that forbids the transition."""
    status_code = 409


class StorageError(WorkflowError):
    """Raised when the document store or blob store fails. The cause is chained."""
    status_code = 503
