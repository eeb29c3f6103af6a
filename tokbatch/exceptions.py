"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class TokBatchError(Exception):
    """Base exception for all application-specific errors."""


class TransformFailure(TokBatchError):
    """Raised when a single relay attempt fails. Never leaves the relay fetcher."""


class MalformedResponseError(TransformFailure):
    """Raised when a relay returns a payload that cannot be decoded."""


class AllRelaysExhaustedError(TokBatchError):
    """Raised when every relay transform failed for one fetch call."""

    def __init__(self, message: str, failures: list[str] | None = None):
        super().__init__(message)
        self.failures = failures or []


class RateLimitedError(TokBatchError):
    """Raised when the resolution service reports that it is throttling requests."""


class ResolutionFailedError(TokBatchError):
    """Raised when a source link could not be resolved into metadata."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidTransitionError(TokBatchError):
    """Raised when a task state change is requested from an illegal state."""


class TaskNotFoundError(TokBatchError):
    """Raised when an operation references a task id that does not exist."""


class ArchiveError(TokBatchError):
    """Raised when the output archive cannot be built or written."""


class ConfigurationError(TokBatchError):
    """Raised for issues related to configuration loading or validation."""
