"""Exceptions raised by PySpSync."""

from __future__ import annotations


class SpSyncError(Exception):
    """Base exception for all PySpSync errors."""


class SpSyncConfigError(SpSyncError):
    """Raised when required configuration is missing or invalid."""


class NoContentError(SpSyncError):
    """Raised when the sync root is missing or contains nothing to upload."""


class GraphAPIError(SpSyncError):
    """Error returned by the Graph API.

    Attributes:
        status_code: HTTP status of the failed response (None for network errors)
        retry_after_ms: Parsed ``Retry-After`` hint in milliseconds, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms


class TransientError(GraphAPIError):
    """A failure that may succeed when retried (rate limit, gateway errors)."""


class NetworkError(TransientError):
    """The request never got a response (DNS, connect, read timeout...)."""


class ConflictError(GraphAPIError):
    """An item with the same name already exists at the target location."""


class LockedError(GraphAPIError):
    """The target item is locked, usually because someone is editing it."""


class FatalError(GraphAPIError):
    """Any other non-retryable API failure."""


class SyncAbortedError(SpSyncError):
    """The sync run cannot continue."""


class FolderCreationError(SyncAbortedError):
    """A remote folder could not be created."""


class FolderResolutionError(SyncAbortedError):
    """An existing remote folder could not be resolved unambiguously."""
