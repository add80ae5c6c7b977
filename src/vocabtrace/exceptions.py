"""Custom exceptions for vocabtrace.

Each exception type represents a category of error.
Catch specific exceptions to handle errors appropriately.
"""


class VocabTraceError(Exception):
    """Base exception for all vocabtrace errors."""

    code = "INTERNAL_ERROR"
    retryable = False

    def to_payload(self) -> dict:
        """Convert to an error payload for command envelopes."""
        return {
            "code": self.code,
            "message": str(self),
            "retryable": self.retryable,
        }


class ValidationError(VocabTraceError):
    """Raised when a request is missing a required field or is malformed."""

    code = "VALIDATION_ERROR"


class NotFoundError(VocabTraceError):
    """Raised when a vocabulary entry or encounter doesn't exist."""

    code = "NOT_FOUND"


class ConflictError(VocabTraceError):
    """Raised when a concurrent writer won a compare-and-set race."""

    code = "CONFLICT"
    retryable = True


class StorageError(VocabTraceError):
    """Raised when the database cannot be read or written."""

    code = "STORAGE_ERROR"


class ConfigError(VocabTraceError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIG_ERROR"
