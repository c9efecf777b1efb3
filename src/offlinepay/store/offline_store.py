"""Durable local store for transfers queued while offline.

Three collections live in one SQLite database: pending transfers, cached
recipient profiles and free-form offline settings. Every public coroutine runs
in its own ``AsyncSession`` and commits once, so each operation is a single
atomic transaction. Storage failures surface as ``StorageUnavailable``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import delete, event, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from offlinepay.core.errors import StorageUnavailable

from .hashing import (
    AMOUNT_DECIMAL_PLACES,
    AMOUNT_MAX_DIGITS,
    canonical_amount,
    derive_transfer_id,
    integrity_hash,
)
from .models import (
    ACTIVE_STATUSES,
    Base,
    CachedRecipientRow,
    OfflineSettingRow,
    PendingTransferRow,
    TransferStatus,
)

logger = logging.getLogger(__name__)

DEVICE_ID_SETTING = "device_id"


class TransferRequest(BaseModel):
    """A transfer as submitted by the caller, before it is queued."""

    sender_id: str = Field(min_length=1)
    receiver_id: str = Field(min_length=1)
    receiver_token: str | None = None
    amount: Decimal = Field(
        gt=0, max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )
    description: str | None = None

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value


class CachedRecipientInput(BaseModel):
    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    display_name: str | None = None
    payment_id: str = Field(min_length=1)


@dataclass(frozen=True)
class PendingTransfer:
    id: str
    sender_id: str
    receiver_id: str
    receiver_token: str | None
    amount: Decimal
    description: str | None
    created_at_ms: int
    status: TransferStatus
    integrity_hash: str
    retry_count: int
    device_id: str
    last_error: str | None = None


@dataclass(frozen=True)
class CachedRecipient:
    id: str
    user_id: str
    display_name: str | None
    payment_id: str
    cached_at_ms: int


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class SqlAlchemyOfflineStore:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        device_id: str | None = None,
        clock_ms: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._device_id = device_id
        self._clock_ms = clock_ms
        self._last_created_at_ms = 0

    # ── Pending transfers ────────────────────────────────────────────────

    async def enqueue(self, request: TransferRequest) -> PendingTransfer:
        """Persist *request* as a new ``pending`` transfer and return it."""
        device_id = await self.device_id()
        created_at_ms = self._next_timestamp_ms()
        amount = Decimal(canonical_amount(request.amount))
        transfer_hash = integrity_hash(
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
            amount=amount,
            created_at_ms=created_at_ms,
            device_id=device_id,
        )
        row = PendingTransferRow(
            id=derive_transfer_id(created_at_ms, transfer_hash),
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
            receiver_token=request.receiver_token,
            amount=canonical_amount(amount),
            description=request.description,
            created_at_ms=created_at_ms,
            status=TransferStatus.PENDING.value,
            integrity_hash=transfer_hash,
            retry_count=0,
            device_id=device_id,
        )
        async with self._session("enqueue") as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            payload = _to_transfer(row)
        logger.info(
            "Queued offline transfer %s (%s)",
            payload.id,
            payload.amount,
            extra={"transfer_id": payload.id, "transfer_hash": payload.integrity_hash},
        )
        return payload

    async def get_transfer(self, transfer_id: str) -> Optional[PendingTransfer]:
        async with self._session("get_transfer") as session:
            row = await session.get(PendingTransferRow, transfer_id)
            return _to_transfer(row) if row else None

    async def list_pending(self) -> list[PendingTransfer]:
        async with self._session("list_pending") as session:
            result = await session.execute(
                select(PendingTransferRow)
                .where(PendingTransferRow.status == TransferStatus.PENDING.value)
                .order_by(PendingTransferRow.created_at_ms)
            )
            return [_to_transfer(row) for row in result.scalars().all()]

    async def list_all(self) -> list[PendingTransfer]:
        """Every queued transfer, newest first."""
        async with self._session("list_all") as session:
            result = await session.execute(
                select(PendingTransferRow).order_by(
                    PendingTransferRow.created_at_ms.desc()
                )
            )
            return [_to_transfer(row) for row in result.scalars().all()]

    async def set_status(
        self,
        transfer_id: str,
        status: TransferStatus,
        *,
        increment_retry: bool = False,
        last_error: str | None = None,
    ) -> Optional[PendingTransfer]:
        """Update status (and optionally the retry count); unknown ids are a no-op."""
        async with self._session("set_status") as session:
            row = await session.get(PendingTransferRow, transfer_id)
            if row is None:
                return None
            row.status = TransferStatus(status).value
            if increment_retry:
                row.retry_count += 1
            if last_error is not None:
                row.last_error = last_error
            row.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(row)
            return _to_transfer(row)

    async def remove(self, transfer_id: str) -> bool:
        async with self._session("remove") as session:
            result = await session.execute(
                delete(PendingTransferRow).where(PendingTransferRow.id == transfer_id)
            )
            await session.commit()
            return bool(result.rowcount)

    async def purge_finished(self) -> int:
        """Delete terminal records; ``pending`` and ``syncing`` are never touched."""
        async with self._session("purge_finished") as session:
            result = await session.execute(
                delete(PendingTransferRow).where(
                    PendingTransferRow.status.not_in([s.value for s in ACTIVE_STATUSES])
                )
            )
            await session.commit()
            purged = result.rowcount or 0
        if purged:
            logger.info("Purged %d finished offline transfers", purged)
        return purged

    async def requeue_interrupted(self) -> int:
        """Move records stranded in ``syncing`` back to ``pending``."""
        async with self._session("requeue_interrupted") as session:
            result = await session.execute(
                update(PendingTransferRow)
                .where(PendingTransferRow.status == TransferStatus.SYNCING.value)
                .values(status=TransferStatus.PENDING.value, updated_at=datetime.utcnow())
            )
            await session.commit()
            requeued = result.rowcount or 0
        if requeued:
            logger.warning("Requeued %d transfers left in syncing state", requeued)
        return requeued

    async def daily_offline_total(
        self, user_id: str, day_start: datetime | None = None
    ) -> Decimal:
        """Sum of *user_id*'s non-failed queued amounts created since *day_start*.

        *day_start* defaults to local midnight of the store clock's current day.
        Naive datetimes are interpreted as local time.
        """
        if day_start is None:
            now = datetime.fromtimestamp(self._clock_ms() / 1000)
            day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_ms = int(day_start.timestamp() * 1000)
        async with self._session("daily_offline_total") as session:
            result = await session.execute(
                select(PendingTransferRow.amount).where(
                    PendingTransferRow.sender_id == user_id,
                    PendingTransferRow.created_at_ms >= start_ms,
                    PendingTransferRow.status != TransferStatus.FAILED.value,
                )
            )
            return sum((Decimal(amount) for amount in result.scalars().all()), Decimal(0))

    # ── Cached recipients ────────────────────────────────────────────────

    async def cache_recipient(self, record: CachedRecipientInput) -> CachedRecipient:
        """Upsert keyed by payment id; the last write wins."""
        async with self._session("cache_recipient") as session:
            await session.execute(
                delete(CachedRecipientRow).where(
                    or_(
                        CachedRecipientRow.payment_id == record.payment_id,
                        CachedRecipientRow.id == record.id,
                    )
                )
            )
            row = CachedRecipientRow(
                id=record.id,
                user_id=record.user_id,
                display_name=record.display_name,
                payment_id=record.payment_id,
                cached_at_ms=self._clock_ms(),
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _to_recipient(row)

    async def lookup_recipient(self, payment_id: str) -> Optional[CachedRecipient]:
        async with self._session("lookup_recipient") as session:
            result = await session.execute(
                select(CachedRecipientRow).where(
                    CachedRecipientRow.payment_id == payment_id
                )
            )
            row = result.scalar_one_or_none()
            return _to_recipient(row) if row else None

    async def list_cached_recipients(self) -> list[CachedRecipient]:
        async with self._session("list_cached_recipients") as session:
            result = await session.execute(select(CachedRecipientRow))
            return [_to_recipient(row) for row in result.scalars().all()]

    # ── Offline settings ─────────────────────────────────────────────────

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self._session("get_setting") as session:
            row = await session.get(OfflineSettingRow, key)
            if row is None or row.value is None:
                return default
            return row.value

    async def set_setting(self, key: str, value: Any) -> None:
        async with self._session("set_setting") as session:
            row = await session.get(OfflineSettingRow, key)
            if row is None:
                session.add(OfflineSettingRow(key=key, value=value))
            else:
                row.value = value
                row.updated_at = datetime.utcnow()
            await session.commit()

    async def device_id(self) -> str:
        """The originating device id, created and persisted on first use."""
        if self._device_id:
            return self._device_id
        stored = await self.get_setting(DEVICE_ID_SETTING)
        if not stored:
            stored = str(uuid.uuid4())
            await self.set_setting(DEVICE_ID_SETTING, stored)
            logger.info("Registered new offline device id %s", stored)
        self._device_id = str(stored)
        return self._device_id

    # ── Internal helpers ─────────────────────────────────────────────────

    def _next_timestamp_ms(self) -> int:
        # Strictly increasing so ids are never reused within this store.
        created_at_ms = max(self._clock_ms(), self._last_created_at_ms + 1)
        self._last_created_at_ms = created_at_ms
        return created_at_ms

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessionmaker() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Offline store %s failed: %s", operation, exc)
            raise StorageUnavailable(operation, str(exc)) from exc


def create_offline_engine(database_url: str) -> AsyncEngine:
    """Async engine for the offline store, with durable SQLite pragmas."""
    async_url = coerce_async_database_url(database_url)
    engine = create_async_engine(async_url)
    if ":memory:" not in async_url:

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=FULL")
            cursor.close()

    return engine


def coerce_async_database_url(database_url: str) -> str:
    if database_url.startswith("sqlite+aiosqlite://"):
        return database_url
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


async def ensure_offline_schema(engine: AsyncEngine) -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as exc:
        raise StorageUnavailable("ensure_offline_schema", str(exc)) from exc


def _to_transfer(row: PendingTransferRow) -> PendingTransfer:
    return PendingTransfer(
        id=row.id,
        sender_id=row.sender_id,
        receiver_id=row.receiver_id,
        receiver_token=row.receiver_token,
        amount=Decimal(row.amount),
        description=row.description,
        created_at_ms=row.created_at_ms,
        status=TransferStatus(row.status),
        integrity_hash=row.integrity_hash,
        retry_count=row.retry_count,
        device_id=row.device_id,
        last_error=row.last_error,
    )


def _to_recipient(row: CachedRecipientRow) -> CachedRecipient:
    return CachedRecipient(
        id=row.id,
        user_id=row.user_id,
        display_name=row.display_name,
        payment_id=row.payment_id,
        cached_at_ms=row.cached_at_ms,
    )


__all__ = [
    "CachedRecipient",
    "CachedRecipientInput",
    "DEVICE_ID_SETTING",
    "PendingTransfer",
    "SqlAlchemyOfflineStore",
    "TransferRequest",
    "coerce_async_database_url",
    "create_offline_engine",
    "ensure_offline_schema",
]
