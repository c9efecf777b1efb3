from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from offlinepay.connectivity import ConnectivityMonitor, HttpConnectivityProbe
from offlinepay.ledger import HttpLedgerClient, RecipientDirectory
from offlinepay.store import (
    SqlAlchemyOfflineStore,
    create_offline_engine,
    ensure_offline_schema,
)
from offlinepay.sync import AutoSyncTrigger, SyncEngine

from .config import Settings, settings
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

_runtime: "OfflinePayRuntime | None" = None
_runtime_lock = asyncio.Lock()


@dataclass
class OfflinePayRuntime:
    """Everything a host process needs to queue and sync offline transfers."""

    settings: Settings
    db_engine: AsyncEngine
    store: SqlAlchemyOfflineStore
    ledger: HttpLedgerClient
    monitor: ConnectivityMonitor
    sync_engine: SyncEngine
    directory: RecipientDirectory
    scheduler: AsyncIOScheduler
    auto_sync: AutoSyncTrigger
    probe: HttpConnectivityProbe | None = None

    async def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
        if self.probe is not None:
            await self.probe.check()
            self.probe.schedule(
                self.scheduler, interval_s=self.settings.connectivity_probe_interval_s
            )
        self.auto_sync.start()
        logger.info("Offline pay runtime started (online=%s)", self.monitor.is_online)

    async def shutdown(self) -> None:
        self.auto_sync.stop()
        if self.probe is not None:
            self.probe.unschedule(self.scheduler)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        # A drain already in flight still needs the ledger client and the engine.
        await self.sync_engine.wait_idle()
        self.sync_engine.clear_observer()
        await self.ledger.aclose()
        await self.db_engine.dispose()
        logger.info("Offline pay runtime stopped")


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return
    database = url.database or ""
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def _create_scheduler() -> AsyncIOScheduler:
    """Create scheduler with in-memory jobstore.

    Drain jobs are cheap to recreate: the queue itself lives in the offline
    store and the trigger schedules a startup drain on every boot.
    """
    scheduler = AsyncIOScheduler()
    logger.info("Scheduler initialized")
    return scheduler


async def build_runtime(config: Settings | None = None) -> OfflinePayRuntime:
    """Open the offline store and wire the sync pipeline around it (not started)."""
    config = config or settings

    _ensure_sqlite_directory(config.database_url)
    db_engine = create_offline_engine(config.database_url)
    await ensure_offline_schema(db_engine)
    sessionmaker = async_sessionmaker(db_engine, expire_on_commit=False)
    store = SqlAlchemyOfflineStore(sessionmaker)
    requeued = await store.requeue_interrupted()
    if requeued:
        logger.info("Recovered %d interrupted transfer(s) from previous run", requeued)

    ledger = HttpLedgerClient(
        base_url=config.ledger_base_url,
        api_key=config.ledger_api_key,
        timeout_s=config.ledger_timeout_s,
    )
    monitor = ConnectivityMonitor()
    sync_engine = SyncEngine(
        store,
        ledger,
        max_retries=config.max_sync_retries,
        call_timeout_s=config.remote_call_timeout_s,
        retry_rejected=config.retry_rejected_transfers,
    )
    scheduler = _create_scheduler()
    auto_sync = AutoSyncTrigger(
        sync_engine,
        monitor,
        scheduler,
        settle_delay_s=config.online_settle_delay_s,
        startup_delay_s=config.startup_sync_delay_s,
    )
    probe = None
    if config.connectivity_probe_url:
        probe = HttpConnectivityProbe(monitor, config.connectivity_probe_url)

    return OfflinePayRuntime(
        settings=config,
        db_engine=db_engine,
        store=store,
        ledger=ledger,
        monitor=monitor,
        sync_engine=sync_engine,
        directory=RecipientDirectory(store, ledger, monitor),
        scheduler=scheduler,
        auto_sync=auto_sync,
        probe=probe,
    )


async def initialize_runtime() -> OfflinePayRuntime:
    """Build and start the process-wide runtime, reusing the singleton instance."""
    global _runtime
    if _runtime:
        return _runtime

    async with _runtime_lock:
        if _runtime:
            return _runtime
        configure_logging(default_level=settings.log_level)
        runtime = await build_runtime(settings)
        await runtime.start()
        _runtime = runtime
        return _runtime


async def shutdown_runtime() -> None:
    """Stop and release the singleton runtime and attached resources."""
    global _runtime
    async with _runtime_lock:
        runtime = _runtime
        if runtime is None:
            return
        _runtime = None

    await runtime.shutdown()


__all__ = [
    "OfflinePayRuntime",
    "build_runtime",
    "initialize_runtime",
    "shutdown_runtime",
]
