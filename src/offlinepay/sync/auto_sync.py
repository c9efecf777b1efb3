from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from offlinepay.connectivity.monitor import ConnectivityChange, ConnectivityMonitor

from .engine import SyncEngine

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "offlinepay-auto-sync"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AutoSyncTrigger:
    """Schedules a drain pass whenever the device comes back online.

    All drains share one job id, so a connection that flaps several times
    inside the settle window still produces a single pass.
    """

    def __init__(
        self,
        engine: SyncEngine,
        monitor: ConnectivityMonitor,
        scheduler: BaseScheduler,
        *,
        settle_delay_s: float = 1.0,
        startup_delay_s: float = 2.0,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._engine = engine
        self._monitor = monitor
        self._scheduler = scheduler
        self._settle_delay = timedelta(seconds=settle_delay_s)
        self._startup_delay = timedelta(seconds=startup_delay_s)
        self._now = now
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._monitor.subscribe(self._on_change)
        if self._monitor.is_online:
            self._schedule(self._startup_delay, reason="startup")

    def stop(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        try:
            self._scheduler.remove_job(AUTO_SYNC_JOB_ID)
        except JobLookupError:
            logger.debug("No scheduled auto-sync job to remove")

    def _on_change(self, change: ConnectivityChange) -> None:
        if change.became_online:
            self._schedule(self._settle_delay, reason="online")

    def _schedule(self, delay: timedelta, *, reason: str) -> None:
        run_at = self._now() + delay
        self._scheduler.add_job(
            self._drain,
            trigger="date",
            run_date=run_at,
            id=AUTO_SYNC_JOB_ID,
            replace_existing=True,
        )
        logger.debug("Auto-sync scheduled for %s (%s)", run_at.isoformat(), reason)

    async def _drain(self) -> None:
        try:
            result = await self._engine.run_sync()
        except Exception:
            logger.exception("Scheduled sync pass failed")
            return
        if result.synced or result.failed:
            logger.info(
                "Auto-sync: %d synced, %d failed",
                result.synced,
                result.failed,
                extra={"synced": result.synced, "failed": result.failed},
            )


__all__ = ["AUTO_SYNC_JOB_ID", "AutoSyncTrigger"]
