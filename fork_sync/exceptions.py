"""Exceptions raised by the fork-sync core."""

from typing import Any


class ForkSyncError(Exception):
    """Base exception for fork-sync errors.

    Attributes:
        message: Error message
        details: Optional dictionary of additional error details
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(ForkSyncError):
    """Raised when configuration is missing or invalid."""
    pass


class FetchError(ForkSyncError):
    """Raised when the upstream head SHA could not be looked up.

    Local to one candidate: the evaluator skips enqueue and bookkeeping,
    so the link stays stale and is retried on a later tick.
    """

    def __init__(
        self,
        message: str,
        link_id: int | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.link_id = link_id
        self.status_code = status_code


class QueueError(ForkSyncError):
    """Raised when a push or pop against the job queue fails."""
    pass


class QueueExistsError(QueueError):
    """Raised when creating a queue that already exists."""
    pass


class StatusStoreError(ForkSyncError):
    """Raised when reading or writing a status record fails."""
    pass
