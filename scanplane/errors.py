"""Exception hierarchy for scanplane.

Three families of errors:
- Provider errors drive the scanner resource lifecycle. RetryableError means
  "not ready yet, call again later" and carries an estimated wait; FatalError
  means retrying will never help.
- Family errors come out of a FamilyManager run. They are collected into the
  run's error list, never raised out of it.
- Storage errors are raised by the scan results store.
"""

from typing import Any


class ScanPlaneError(Exception):
    """Base exception for all scanplane errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize error.

        Args:
            message: Human-readable error message
            details: Additional structured details about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "exception_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


# === PROVIDER ERRORS ===


class ProviderError(ScanPlaneError):
    """Transient provider error without a wait estimate.

    The caller should retry with its own backoff.
    """


class RetryableError(ProviderError):
    """Resource is not ready yet; call the same step again later."""

    def __init__(self, message: str, after: float, details: dict[str, Any] | None = None):
        """Initialize retryable error.

        Args:
            message: What is still pending
            after: Estimated seconds until the next attempt is worthwhile
            details: Additional structured details
        """
        super().__init__(message, details)
        self.after = after

    def __str__(self) -> str:
        return f"{self.message} (retry after {self.after:.0f}s)"


class FatalError(ProviderError):
    """Condition that will never resolve by retrying."""


class ResourceNotFoundError(ProviderError):
    """Requested cloud resource does not exist."""


class PollTimeoutError(ProviderError):
    """Poll driver gave up waiting for a lifecycle step to finish."""


# === FAMILY ERRORS ===


class FamilyError(ScanPlaneError):
    """Error produced while running a scan family."""


class FamilyAbortedError(FamilyError):
    """Family was abandoned because its run context was cancelled."""


class NotificationError(FamilyError):
    """Caller-supplied notifier hook failed."""


class FamiliesFailedError(FamilyError):
    """At least one family in a run failed."""


class ToolExecutionError(FamilyError):
    """External scanner tool exited abnormally or timed out."""


class ToolNotFoundError(ToolExecutionError):
    """External scanner binary is not installed."""


# === STORAGE ERRORS ===


class StorageError(ScanPlaneError):
    """Error from the scan results store."""


class BadRequestError(StorageError):
    """Document failed validation before being stored."""


class NotFoundError(StorageError):
    """Document does not exist."""


class PreconditionFailedError(StorageError):
    """Revision etag did not match the stored document."""


class ConflictError(StorageError):
    """Uniqueness violation; carries the conflicting stored document."""

    def __init__(self, message: str, existing: Any = None):
        super().__init__(message)
        self.existing = existing
