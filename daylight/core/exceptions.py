"""Custom exception hierarchy."""

from typing import Optional, Sequence


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(AppError):
    """Raised when submitted input is invalid. No job is created."""
    pass


class NotFoundError(AppError):
    """Raised when a journal entry, job or evidence item does not exist for the caller."""
    pass


class JobConflictError(AppError):
    """Raised when a non-terminal job already exists for a journal entry."""

    def __init__(
        self,
        message: str,
        journal_entry_id=None,
        active_job_id=None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.journal_entry_id = journal_entry_id
        self.active_job_id = active_job_id


class InvalidJobStateError(AppError):
    """Raised when a job transition is not allowed from its current status."""

    def __init__(self, message: str, status: Optional[str] = None, original_error: Exception = None):
        super().__init__(message, original_error)
        self.status = status


class ExtractionFailedError(AppError):
    """Upstream extraction failure: timeout, unavailability or schema violation."""

    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    SCHEMA_VIOLATION = "schema_violation"

    def __init__(
        self,
        message: str,
        reason: str = UNAVAILABLE,
        errors: Optional[Sequence[str]] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.reason = reason
        self.errors = list(errors or [])


class PersistenceError(AppError):
    """Raised when the terminal write cannot be committed."""
    pass
