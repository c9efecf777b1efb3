from __future__ import annotations

import logging
import time

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .monitor import ConnectivityMonitor

logger = logging.getLogger(__name__)

PROBE_JOB_ID = "offlinepay-connectivity-probe"


class HttpConnectivityProbe:
    """Feeds a :class:`ConnectivityMonitor` from periodic HTTP reachability checks.

    Any HTTP response counts as online (the server answered); transport errors
    and timeouts count as offline. The measured round trip is reported as the
    link's ``rtt_ms`` hint.
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        url: str,
        *,
        timeout_s: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._monitor = monitor
        self._url = url
        self._timeout_s = timeout_s
        self._client = client

    async def check(self) -> bool:
        started = time.perf_counter()
        try:
            if self._client is not None:
                await self._client.get(self._url, timeout=self._timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                    await client.get(self._url)
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe to %s failed (%s)", self._url, type(exc).__name__)
            self._monitor.update(False)
            return False

        rtt_ms = round((time.perf_counter() - started) * 1000, 1)
        self._monitor.update(True, rtt_ms=rtt_ms)
        return True

    def schedule(self, scheduler: AsyncIOScheduler, *, interval_s: float) -> None:
        scheduler.add_job(
            self.check,
            trigger="interval",
            seconds=interval_s,
            id=PROBE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def unschedule(self, scheduler: AsyncIOScheduler) -> None:
        if scheduler.get_job(PROBE_JOB_ID) is not None:
            scheduler.remove_job(PROBE_JOB_ID)


__all__ = ["HttpConnectivityProbe", "PROBE_JOB_ID"]
