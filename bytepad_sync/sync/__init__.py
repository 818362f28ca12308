"""Sync module - reconciles local collections with a GitHub Gist."""

from .collections import FieldCollection, ListCollection, LocalCollections
from .coordinator import SyncCoordinator
from .document import SyncDocument, count_items
from .errors import (
    AuthError,
    ConfigurationError,
    FormatError,
    NotFoundError,
    RemoteError,
    SyncError,
    SyncErrorKind,
    ValidationBlocked,
)
from .gist_client import GistClient
from .merge import MergeEngine
from .protocols import FieldAccessor, ListAccessor, RemoteStoreProtocol
from .retry import RetryConfig
from .snapshot import SnapshotBuilder
from .sync_engine import SyncAction, SyncEngine, SyncResult
from .validator import LossRiskValidator, ValidationResult

__all__ = [
    "FieldCollection",
    "ListCollection",
    "LocalCollections",
    "SyncCoordinator",
    "SyncDocument",
    "count_items",
    "AuthError",
    "ConfigurationError",
    "FormatError",
    "NotFoundError",
    "RemoteError",
    "SyncError",
    "SyncErrorKind",
    "ValidationBlocked",
    "GistClient",
    "MergeEngine",
    "FieldAccessor",
    "ListAccessor",
    "RemoteStoreProtocol",
    "RetryConfig",
    "SnapshotBuilder",
    "SyncAction",
    "SyncEngine",
    "SyncResult",
    "LossRiskValidator",
    "ValidationResult",
]
