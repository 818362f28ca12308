"""Sync coordinator - owns the auto-sync and debounce schedulers."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .collections import SOURCE_REMOTE, LocalCollections
from .snapshot import utc_now
from .sync_engine import SyncEngine, SyncResult

__all__ = ["SyncCoordinator", "AUTO_SYNC_JOB", "DEBOUNCED_SYNC_JOB"]

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB = "auto_sync"
DEBOUNCED_SYNC_JOB = "debounced_sync"


class SyncCoordinator:
    """Schedules sync attempts for a SyncEngine.

    Two independent triggers feed the same engine: a fixed-interval job
    while auto-sync is on, and a single debounce job that every local
    mutation pushes 30 seconds into the future. Overlap between them is
    resolved by the engine's in-flight guard.
    """

    def __init__(
        self,
        engine: SyncEngine,
        scheduler: Optional[BaseScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_result: Optional[Callable[[SyncResult], None]] = None,
    ):
        self.engine = engine
        self.settings = engine.settings
        self.scheduler = scheduler or BackgroundScheduler()
        self.clock = clock or utc_now
        self._on_result = on_result

    @property
    def debounce_delay(self) -> timedelta:
        return timedelta(seconds=self.settings.debounce_seconds)

    def start_auto_sync(self, interval_minutes: Optional[int] = None) -> bool:
        """Start periodic syncing and run one sync right away.

        Returns:
            True if the interval job was scheduled
        """
        interval = (
            interval_minutes
            if interval_minutes is not None
            else self.settings.sync_interval_minutes
        )
        if not self.settings.is_configured or not self.settings.auto_sync:
            logger.info("Auto-sync not enabled or not configured")
            return False
        if interval <= 0:
            logger.info(f"Auto-sync disabled by interval {interval}")
            return False

        self._ensure_running()
        self.scheduler.add_job(
            self._do_sync,
            trigger=IntervalTrigger(minutes=interval),
            id=AUTO_SYNC_JOB,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Auto-sync started: every {interval} minutes")
        self._do_sync()
        return True

    def stop_auto_sync(self) -> None:
        """Cancel the interval job and any pending debounced sync."""
        for job_id in (AUTO_SYNC_JOB, DEBOUNCED_SYNC_JOB):
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                pass
        logger.info("Auto-sync stopped")

    def reschedule(self, interval_minutes: int) -> None:
        """Change the sync interval on the fly."""
        self.settings.sync_interval_minutes = interval_minutes
        if self.scheduler.get_job(AUTO_SYNC_JOB) is None:
            return
        if interval_minutes <= 0:
            self.scheduler.remove_job(AUTO_SYNC_JOB)
            return
        self.scheduler.reschedule_job(
            AUTO_SYNC_JOB, trigger=IntervalTrigger(minutes=interval_minutes)
        )

    def trigger_debounced_sync(self) -> None:
        """(Re)arm the debounce timer; called on every local mutation."""
        if not self.settings.is_configured:
            return
        self._ensure_running()
        run_date = self.clock() + self.debounce_delay
        self.scheduler.add_job(
            self._do_sync,
            trigger=DateTrigger(run_date=run_date),
            id=DEBOUNCED_SYNC_JOB,
            replace_existing=True,
        )
        logger.debug(f"Debounced sync scheduled for {run_date.isoformat()}")

    def attach(self, collections: LocalCollections) -> None:
        """Debounce a sync after every locally-sourced change."""
        collections.add_listener(self._on_collections_changed)

    def detach(self, collections: LocalCollections) -> None:
        collections.remove_listener(self._on_collections_changed)

    def shutdown(self) -> None:
        """Stop all jobs and the scheduler; in-flight syncs finish normally."""
        self.stop_auto_sync()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    # -- internal ---------------------------------------------------------

    def _on_collections_changed(self, changed: list[str], source: str) -> None:
        if source == SOURCE_REMOTE:
            return
        self.trigger_debounced_sync()

    def _ensure_running(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def _do_sync(self) -> None:
        result = self.engine.sync()
        if result.success:
            logger.info(f"Sync complete: {result.message}")
        else:
            logger.warning(f"Sync did not complete: {result.message}")
        if self._on_result:
            self._on_result(result)
