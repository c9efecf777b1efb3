from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class TransferStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    FAILED = "failed"


ACTIVE_STATUSES = (TransferStatus.PENDING, TransferStatus.SYNCING)


class PendingTransferRow(Base):
    __tablename__ = "pending_transfers"
    __table_args__ = (
        UniqueConstraint("integrity_hash", name="uq_pending_transfers_hash"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    sender_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    receiver_id: Mapped[str] = mapped_column(String, nullable=False)
    receiver_token: Mapped[str | None] = mapped_column(String, nullable=True)
    # Canonical decimal string; SQLite has no exact decimal type.
    amount: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=TransferStatus.PENDING.value, index=True
    )
    integrity_hash: Mapped[str] = mapped_column(String, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    device_id: Mapped[str] = mapped_column(String, nullable=False)
    last_error: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class CachedRecipientRow(Base):
    __tablename__ = "cached_recipients"
    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_cached_recipients_payment_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    cached_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)


class OfflineSettingRow(Base):
    __tablename__ = "offline_settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


__all__ = [
    "ACTIVE_STATUSES",
    "Base",
    "CachedRecipientRow",
    "OfflineSettingRow",
    "PendingTransferRow",
    "TransferStatus",
]
