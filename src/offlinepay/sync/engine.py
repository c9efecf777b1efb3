"""Drains the offline transfer queue into the remote ledger.

One drain pass walks every ``pending`` transfer strictly one at a time:

``pending → syncing → removed | pending (retry) | failed (terminal)``

Key design decisions
--------------------
* The integrity hash is the only source of truth for "already applied". The
  duplicate check always precedes ``process_transfer``, so re-driving a record
  whose previous submission succeeded remotely is harmless.
* Local state is updated right after each remote call. A crash between records
  leaves every unprocessed record ``pending`` (or ``syncing``, which the next
  pass requeues).
* Passes never overlap on one engine instance; a trigger that arrives while a
  pass is running is dropped, not queued.
* Ledger errors are caught per record and become status transitions. Storage
  errors are not caught and abort the pass.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Optional, Protocol, TypeVar

from offlinepay.core.errors import NetworkUnavailable, RemoteLedgerError, RemoteRejected
from offlinepay.ledger.client import RemoteLedger
from offlinepay.store.models import TransferStatus
from offlinepay.store.offline_store import PendingTransfer

from .messages import (
    SyncNotification,
    SyncObserver,
    SyncOutcome,
    SyncResult,
    error_notification,
    success_notification,
    syncing_notification,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
"""Retries after the first attempt; the third consecutive failure is terminal."""

T = TypeVar("T")


class TransferQueue(Protocol):
    async def list_pending(self) -> list[PendingTransfer]:
        ...

    async def set_status(
        self,
        transfer_id: str,
        status: TransferStatus,
        *,
        increment_retry: bool = False,
        last_error: str | None = None,
    ) -> Optional[PendingTransfer]:
        ...

    async def remove(self, transfer_id: str) -> bool:
        ...

    async def requeue_interrupted(self) -> int:
        ...


class SyncEngine:
    """Submits queued transfers to the ledger with dedup and bounded retries."""

    def __init__(
        self,
        store: TransferQueue,
        ledger: RemoteLedger,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        call_timeout_s: float | None = 10.0,
        retry_rejected: bool = True,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._max_retries = max_retries
        self._call_timeout_s = call_timeout_s
        self._retry_rejected = retry_rejected
        self._lock = asyncio.Lock()
        self._observer: SyncObserver | None = None

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def register_observer(self, observer: SyncObserver) -> None:
        """Install *observer*, replacing any previously registered one."""
        self._observer = observer

    def clear_observer(self) -> None:
        self._observer = None

    async def wait_idle(self) -> None:
        """Return once no drain pass is running on this engine."""
        async with self._lock:
            pass

    async def run_sync(self) -> SyncResult:
        """Run one drain pass; returns zero counts if a pass is already running."""
        if self._lock.locked():
            logger.info("Sync already in progress")
            return SyncResult()
        async with self._lock:
            return await self._drain()

    async def _drain(self) -> SyncResult:
        await self._store.requeue_interrupted()
        pending = await self._store.list_pending()
        if not pending:
            return SyncResult()

        self._notify(syncing_notification(len(pending)))

        synced = 0
        failed = 0
        for transfer in pending:
            outcome = await self._sync_one(transfer)
            if outcome in (SyncOutcome.SYNCED, SyncOutcome.DUPLICATE):
                synced += 1
            else:
                failed += 1

        if synced > 0:
            self._notify(success_notification(synced))
        if failed > 0:
            self._notify(error_notification(failed))

        logger.info(
            "Sync pass finished: %d synced, %d failed",
            synced,
            failed,
            extra={"synced": synced, "failed": failed},
        )
        return SyncResult(synced=synced, failed=failed)

    async def _sync_one(self, transfer: PendingTransfer) -> SyncOutcome:
        await self._store.set_status(transfer.id, TransferStatus.SYNCING)

        remote_id: str | None = None
        try:
            duplicate = await self._call(
                self._ledger.duplicate_exists(transfer.integrity_hash)
            )
            if not duplicate:
                remote_id = await self._call(
                    self._ledger.process_transfer(
                        sender_id=transfer.sender_id,
                        receiver_id=transfer.receiver_id,
                        amount=transfer.amount,
                        description=transfer.description,
                        is_offline=True,
                        transfer_hash=transfer.integrity_hash,
                        device_id=transfer.device_id,
                    )
                )
        except Exception as exc:
            return await self._record_failure(transfer, exc)

        await self._store.remove(transfer.id)
        if duplicate:
            logger.info(
                "Transfer %s already on ledger, removed local copy",
                transfer.id,
                extra={"transfer_id": transfer.id, "transfer_hash": transfer.integrity_hash},
            )
            return SyncOutcome.DUPLICATE

        logger.info(
            "Transfer %s synced as %s",
            transfer.id,
            remote_id,
            extra={"transfer_id": transfer.id, "transfer_hash": transfer.integrity_hash},
        )
        return SyncOutcome.SYNCED

    async def _record_failure(
        self, transfer: PendingTransfer, exc: Exception
    ) -> SyncOutcome:
        retry_count = transfer.retry_count + 1
        terminal = retry_count > self._max_retries or (
            not self._retry_rejected and isinstance(exc, RemoteRejected)
        )
        status = TransferStatus.FAILED if terminal else TransferStatus.PENDING
        await self._store.set_status(
            transfer.id,
            status,
            increment_retry=True,
            last_error=_describe(exc),
        )

        extra = {"transfer_id": transfer.id, "transfer_hash": transfer.integrity_hash}
        if not isinstance(exc, RemoteLedgerError):
            logger.exception("Unexpected error syncing transfer %s", transfer.id, extra=extra)
        elif terminal:
            logger.error(
                "Transfer %s failed permanently after %d attempts: %s",
                transfer.id,
                retry_count,
                exc,
                extra=extra,
            )
        else:
            logger.warning(
                "Transfer %s failed (attempt %d), will retry: %s",
                transfer.id,
                retry_count,
                exc,
                extra=extra,
            )
        return SyncOutcome.FAILED if terminal else SyncOutcome.RETRY

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self._call_timeout_s is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._call_timeout_s)
        except asyncio.TimeoutError as exc:
            raise NetworkUnavailable(
                f"Ledger call timed out after {self._call_timeout_s}s"
            ) from exc

    def _notify(self, notification: SyncNotification) -> None:
        observer = self._observer
        if observer is None:
            return
        try:
            observer(notification)
        except Exception:
            logger.exception("Sync observer failed on %s", notification.phase.value)


def _describe(exc: Exception) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


__all__ = ["DEFAULT_MAX_RETRIES", "SyncEngine", "TransferQueue"]
