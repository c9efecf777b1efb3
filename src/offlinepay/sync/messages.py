from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable


class SyncPhase(str, Enum):
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncOutcome(str, Enum):
    """What happened to one transfer during a drain pass."""

    SYNCED = "synced"
    DUPLICATE = "duplicate"
    RETRY = "retry"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncNotification:
    phase: SyncPhase
    count: int
    message: str


@dataclass(frozen=True)
class SyncResult:
    synced: int = 0
    failed: int = 0


SyncObserver = Callable[[SyncNotification], None]


def _plural(count: int) -> str:
    return "transaction" if count == 1 else "transactions"


def syncing_notification(count: int) -> SyncNotification:
    return SyncNotification(SyncPhase.SYNCING, count, f"Syncing {count} {_plural(count)}...")


def success_notification(count: int) -> SyncNotification:
    return SyncNotification(SyncPhase.SUCCESS, count, f"{count} {_plural(count)} synced!")


def error_notification(count: int) -> SyncNotification:
    return SyncNotification(
        SyncPhase.ERROR, count, f"{count} {_plural(count)} failed to sync"
    )


__all__ = [
    "SyncNotification",
    "SyncObserver",
    "SyncOutcome",
    "SyncPhase",
    "SyncResult",
    "error_notification",
    "success_notification",
    "syncing_notification",
]
