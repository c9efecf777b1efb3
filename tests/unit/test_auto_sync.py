from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.jobstores.base import JobLookupError
from freezegun import freeze_time

from offlinepay.connectivity import ConnectivityMonitor
from offlinepay.core.errors import StorageUnavailable
from offlinepay.sync import AUTO_SYNC_JOB_ID, AutoSyncTrigger, SyncResult

FROZEN_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _trigger(monitor: ConnectivityMonitor, scheduler: MagicMock, engine=None) -> AutoSyncTrigger:
    return AutoSyncTrigger(
        engine or AsyncMock(),
        monitor,
        scheduler,
        settle_delay_s=1.0,
        startup_delay_s=2.0,
    )


@freeze_time("2024-05-01 12:00:00")
def test_start_while_online_schedules_startup_drain() -> None:
    scheduler = MagicMock()
    trigger = _trigger(ConnectivityMonitor(initial_online=True), scheduler)

    trigger.start()
    trigger.start()

    scheduler.add_job.assert_called_once()
    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["trigger"] == "date"
    assert kwargs["id"] == AUTO_SYNC_JOB_ID
    assert kwargs["replace_existing"] is True
    assert kwargs["run_date"] == FROZEN_NOW + timedelta(seconds=2)
    assert trigger.running is True


def test_start_while_offline_schedules_nothing() -> None:
    scheduler = MagicMock()
    trigger = _trigger(ConnectivityMonitor(initial_online=False), scheduler)

    trigger.start()

    scheduler.add_job.assert_not_called()


@freeze_time("2024-05-01 12:00:00")
def test_coming_online_schedules_settle_drain() -> None:
    scheduler = MagicMock()
    monitor = ConnectivityMonitor(initial_online=False)
    trigger = _trigger(monitor, scheduler)
    trigger.start()

    monitor.update(True)

    scheduler.add_job.assert_called_once()
    assert scheduler.add_job.call_args.kwargs["run_date"] == FROZEN_NOW + timedelta(seconds=1)


def test_flapping_connection_reuses_one_job_id() -> None:
    scheduler = MagicMock()
    monitor = ConnectivityMonitor(initial_online=False)
    trigger = _trigger(monitor, scheduler)
    trigger.start()

    monitor.update(True)
    monitor.update(False)
    monitor.update(True)
    monitor.update(True, rtt_ms=40.0)

    assert scheduler.add_job.call_count == 2
    job_ids = {call.kwargs["id"] for call in scheduler.add_job.call_args_list}
    assert job_ids == {AUTO_SYNC_JOB_ID}


def test_stop_unsubscribes_and_removes_job() -> None:
    scheduler = MagicMock()
    monitor = ConnectivityMonitor(initial_online=False)
    trigger = _trigger(monitor, scheduler)
    trigger.start()

    trigger.stop()
    monitor.update(True)

    scheduler.remove_job.assert_called_once_with(AUTO_SYNC_JOB_ID)
    scheduler.add_job.assert_not_called()
    assert trigger.running is False


def test_stop_without_scheduled_job_is_quiet() -> None:
    scheduler = MagicMock()
    scheduler.remove_job.side_effect = JobLookupError(AUTO_SYNC_JOB_ID)
    trigger = _trigger(ConnectivityMonitor(), scheduler)
    trigger.start()

    trigger.stop()
    trigger.stop()

    scheduler.remove_job.assert_called_once()


@pytest.mark.asyncio
async def test_scheduled_drain_runs_engine() -> None:
    engine = AsyncMock()
    engine.run_sync.return_value = SyncResult(synced=2, failed=0)
    trigger = _trigger(ConnectivityMonitor(), MagicMock(), engine)

    await trigger._drain()

    engine.run_sync.assert_awaited_once()


@pytest.mark.asyncio
async def test_scheduled_drain_failure_is_logged(caplog) -> None:
    engine = AsyncMock()
    engine.run_sync.side_effect = StorageUnavailable("list_pending", "locked")
    trigger = _trigger(ConnectivityMonitor(), MagicMock(), engine)

    await trigger._drain()

    assert "Scheduled sync pass failed" in caplog.text
