"""PySpSync - mirror local directory trees into SharePoint/OneDrive drives."""

from .api import GraphClient
from .exceptions import (
    ConflictError,
    FatalError,
    FolderCreationError,
    FolderResolutionError,
    GraphAPIError,
    LockedError,
    NetworkError,
    NoContentError,
    SpSyncConfigError,
    SpSyncError,
    SyncAbortedError,
    TransientError,
)
from .retry import (
    RetryExecutor,
    RetryPolicy,
    get_retry_after_delay,
    retry_http_operation,
    retry_operation,
)
from .sync import RemoteLocation, SyncEngine, SyncReport

__version__ = "0.1.0"

__all__ = [
    "GraphClient",
    "SyncEngine",
    "RemoteLocation",
    "SyncReport",
    "RetryExecutor",
    "RetryPolicy",
    "retry_operation",
    "retry_http_operation",
    "get_retry_after_delay",
    "SpSyncError",
    "SpSyncConfigError",
    "NoContentError",
    "GraphAPIError",
    "TransientError",
    "NetworkError",
    "ConflictError",
    "LockedError",
    "FatalError",
    "SyncAbortedError",
    "FolderCreationError",
    "FolderResolutionError",
]
