"""Sync error taxonomy."""

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .validator import ValidationResult

__all__ = [
    "SyncErrorKind",
    "SyncError",
    "AuthError",
    "NotFoundError",
    "RemoteError",
    "FormatError",
    "ValidationBlocked",
    "ConfigurationError",
]


class SyncErrorKind(str, Enum):
    """Programmatic error category reported on a SyncResult."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    REMOTE = "remote"
    FORMAT = "format"
    VALIDATION_BLOCKED = "validation_blocked"
    CONFIGURATION = "configuration"
    IN_PROGRESS = "in_progress"


class SyncError(Exception):
    """Base sync error."""

    kind = SyncErrorKind.REMOTE


class AuthError(SyncError):
    """Bad or expired credential."""

    kind = SyncErrorKind.AUTH


class NotFoundError(SyncError):
    """Remote document missing."""

    kind = SyncErrorKind.NOT_FOUND


class RemoteError(SyncError):
    """Transport failure or non-2xx response."""

    kind = SyncErrorKind.REMOTE

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FormatError(SyncError):
    """Remote payload is not a valid SyncDocument."""

    kind = SyncErrorKind.FORMAT


class ValidationBlocked(SyncError):
    """The loss-risk validator vetoed a push or pull."""

    kind = SyncErrorKind.VALIDATION_BLOCKED

    def __init__(self, result: "ValidationResult", operation: str = "push"):
        self.result = result
        self.operation = operation
        blocking = [w.message for w in result.warnings if w.blocking]
        super().__init__(
            f"{operation.capitalize()} blocked to prevent data loss: "
            + "; ".join(blocking)
            + f". Use force {operation} to override."
        )


class ConfigurationError(SyncError):
    """Sync is not enabled or not fully configured."""

    kind = SyncErrorKind.CONFIGURATION

