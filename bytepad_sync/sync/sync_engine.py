"""Sync engine - the pull-or-push protocol against the remote Gist."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from ..config import (
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_SUCCESS,
    GistSyncSettings,
)
from .collections import LocalCollections
from .document import count_items, format_timestamp
from .errors import (
    ConfigurationError,
    NotFoundError,
    SyncError,
    SyncErrorKind,
    ValidationBlocked,
)
from .gist_client import DEFAULT_DESCRIPTION
from .merge import MergeEngine
from .protocols import RemoteStoreProtocol
from .snapshot import SnapshotBuilder, utc_now
from .validator import LossRiskValidator

__all__ = ["SyncEngine", "SyncResult", "SyncAction"]

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    PULL = "pull"
    PUSH = "push"
    NONE = "none"
    SKIPPED = "skipped"


@dataclass
class SyncResult:
    """Outcome of one sync, force push, force pull or create."""

    success: bool
    action: SyncAction
    message: str
    error_kind: Optional[SyncErrorKind] = None
    applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SyncEngine:
    """Reconciles local collections with the single remote document.

    Operations never raise: every failure is reported on the returned
    SyncResult and recorded in the settings' last-attempt fields.

    Only one operation runs at a time. A ``sync()`` requested while another
    operation is in flight returns a SKIPPED result and the running
    operation performs one extra sync pass before releasing the guard, so
    bursts of requests collapse into a single follow-up. The running caller
    gets its own pass's result; the follow-up is reported through the
    settings' last-attempt fields and ``on_status_changed``.
    """

    def __init__(
        self,
        client: RemoteStoreProtocol,
        collections: LocalCollections,
        settings: GistSyncSettings,
        validator: Optional[LossRiskValidator] = None,
        merge: Optional[MergeEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_status_changed: Optional[Callable[[GistSyncSettings], None]] = None,
    ):
        self.client = client
        self.collections = collections
        self.settings = settings
        self.validator = validator or LossRiskValidator()
        self.merge = merge or MergeEngine()
        self.clock = clock or utc_now
        self.builder = SnapshotBuilder(collections, clock=self.clock)
        self._on_status_changed = on_status_changed

        self._state_lock = threading.Lock()
        self._busy = False
        self._rerun_requested = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    # -- public operations ---------------------------------------------------

    def sync(self) -> SyncResult:
        """Pull if the remote is newer, otherwise validate and push."""
        return self._run_guarded(self._sync_once, "sync")

    def push(self) -> SyncResult:
        """Validate and push local data regardless of timestamps."""
        return self._run_guarded(self._push_once, "push")

    def pull(self) -> SyncResult:
        """Apply the Gist's data regardless of timestamps, keeping empty-remote protection."""
        return self._run_guarded(self._pull_once, "pull")

    def force_push(self) -> SyncResult:
        """Write local data to the Gist without loss-risk validation."""
        return self._run_guarded(self._force_push_once, "force push")

    def force_pull(self) -> SyncResult:
        """Overwrite local collections with the Gist's, ignoring timestamps."""
        return self._run_guarded(self._force_pull_once, "force pull")

    def create_remote(self, description: str = DEFAULT_DESCRIPTION) -> SyncResult:
        """Create a new Gist from local data and adopt its id."""
        return self._run_guarded(
            lambda: self._create_once(description), "create", require_remote_id=False
        )

    def status(self) -> dict:
        counts = count_items(self.builder.build())
        return {
            "configured": self.settings.is_configured,
            "enabled": self.settings.enabled,
            "remote_id": self.settings.remote_id,
            "auto_sync": self.settings.auto_sync,
            "sync_interval_minutes": self.settings.sync_interval_minutes,
            "last_sync_at": self.settings.last_sync_at,
            "last_sync_status": self.settings.last_sync_status,
            "last_sync_error": self.settings.last_sync_error,
            "in_progress": self._busy,
            "local_items": counts,
        }

    # -- protocol --------------------------------------------------------------

    def _sync_once(self) -> SyncResult:
        credential, remote_id = self.settings.credential, self.settings.remote_id
        remote = self.client.read(credential, remote_id)
        local = self.builder.build().carrying_unknown(remote)

        if remote is not None and remote.last_modified > local.last_modified:
            applied = self.merge.apply(remote, self.collections, force_overwrite=False)
            logger.info(f"Sync: pulled (remote newer), applied {applied or 'nothing'}")
            return SyncResult(
                True, SyncAction.PULL, "Pulled latest data from Gist", applied=applied
            )

        if remote is not None and remote.same_data(local):
            logger.debug("Sync: remote already matches local data")
            return SyncResult(True, SyncAction.NONE, "Already in sync")

        return self._validated_push(local, remote)

    def _push_once(self) -> SyncResult:
        remote = self.client.read(self.settings.credential, self.settings.remote_id)
        local = self.builder.build().carrying_unknown(remote)
        return self._validated_push(local, remote)

    def _validated_push(self, local, remote) -> SyncResult:
        validation = self.validator.validate(local, remote)
        if validation.blocking:
            raise ValidationBlocked(validation)

        self.client.write(self.settings.credential, self.settings.remote_id, local)
        logger.info("Pushed local data")
        return SyncResult(
            True,
            SyncAction.PUSH,
            "Pushed local data to Gist",
            warnings=validation.messages,
        )

    def _pull_once(self) -> SyncResult:
        remote = self.client.read(self.settings.credential, self.settings.remote_id)
        if remote is None:
            raise NotFoundError("No data found in Gist")
        validation = self.validator.validate_pull(self.builder.build(), remote)
        if validation.blocking:
            raise ValidationBlocked(validation, operation="pull")
        applied = self.merge.apply(remote, self.collections, force_overwrite=False)
        return SyncResult(
            True, SyncAction.PULL, "Pulled data from Gist", applied=applied
        )

    def _force_push_once(self) -> SyncResult:
        local = self.builder.build()
        self.client.write(self.settings.credential, self.settings.remote_id, local)
        logger.info("Force pushed local data")
        return SyncResult(True, SyncAction.PUSH, "Force pushed local data to Gist")

    def _force_pull_once(self) -> SyncResult:
        remote = self.client.read(self.settings.credential, self.settings.remote_id)
        if remote is None:
            raise NotFoundError("No data found in Gist")
        applied = self.merge.apply(remote, self.collections, force_overwrite=True)
        logger.info(f"Force pulled, applied {applied or 'nothing'}")
        return SyncResult(
            True, SyncAction.PULL, "Force pulled data from Gist", applied=applied
        )

    def _create_once(self, description: str) -> SyncResult:
        remote_id = self.client.create(
            self.settings.credential, self.builder.build(), description
        )
        self.settings.remote_id = remote_id
        return SyncResult(True, SyncAction.PUSH, f"Created Gist: {remote_id}")

    # -- guard and bookkeeping -------------------------------------------------

    def _run_guarded(
        self,
        operation: Callable[[], SyncResult],
        name: str,
        require_remote_id: bool = True,
    ) -> SyncResult:
        is_sync = name == "sync"
        with self._state_lock:
            if self._busy:
                if is_sync:
                    self._rerun_requested = True
                    logger.info("Sync already in progress, queued a follow-up pass")
                    return SyncResult(
                        False,
                        SyncAction.SKIPPED,
                        "Sync already in progress; it will run again when done",
                        error_kind=SyncErrorKind.IN_PROGRESS,
                    )
                return SyncResult(
                    False,
                    SyncAction.NONE,
                    f"Cannot {name} while another sync is in progress",
                    error_kind=SyncErrorKind.IN_PROGRESS,
                )
            self._busy = True

        released = False
        try:
            result = self._attempt(operation, name, require_remote_id)
            while True:
                with self._state_lock:
                    if not self._rerun_requested:
                        self._busy = False
                        released = True
                        return result
                    self._rerun_requested = False
                logger.info("Running queued sync pass")
                follow_up = self._attempt(self._sync_once, "sync", True)
                logger.info(f"Queued sync pass finished: {follow_up.message}")
        finally:
            if not released:
                with self._state_lock:
                    self._busy = False
                    self._rerun_requested = False

    def _attempt(
        self,
        operation: Callable[[], SyncResult],
        name: str,
        require_remote_id: bool,
    ) -> SyncResult:
        try:
            self._check_configured(require_remote_id)
        except ConfigurationError as e:
            return SyncResult(
                False, SyncAction.NONE, str(e), error_kind=e.kind
            )

        self._set_status(STATUS_PENDING)
        try:
            result = operation()
        except ValidationBlocked as e:
            logger.warning(f"{name} blocked: {e}")
            result = SyncResult(
                False,
                SyncAction.NONE,
                str(e),
                error_kind=e.kind,
                warnings=e.result.messages,
            )
        except SyncError as e:
            logger.warning(f"{name} failed: {e}")
            result = SyncResult(False, SyncAction.NONE, str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception(f"Unexpected error during {name}: {e}")
            result = SyncResult(
                False,
                SyncAction.NONE,
                f"Unexpected error: {e}",
                error_kind=SyncErrorKind.REMOTE,
            )

        if result.success:
            self.settings.last_sync_at = format_timestamp(self.clock())
            self._set_status(STATUS_SUCCESS, None)
        else:
            self._set_status(STATUS_ERROR, result.message)
        return result

    def _check_configured(self, require_remote_id: bool) -> None:
        if require_remote_id and not self.settings.enabled:
            raise ConfigurationError("Gist sync not enabled")
        if not self.settings.credential:
            raise ConfigurationError("GitHub token not configured")
        if require_remote_id and not self.settings.remote_id:
            raise ConfigurationError("Gist ID not configured")

    def _set_status(self, status: str, error: Optional[str] = None) -> None:
        self.settings.last_sync_status = status
        if status != STATUS_PENDING:
            self.settings.last_sync_error = error
        if self._on_status_changed:
            try:
                self._on_status_changed(self.settings)
            except Exception as e:
                logger.warning(f"Failed to persist sync status: {e}")
