from .auto_sync import AUTO_SYNC_JOB_ID, AutoSyncTrigger
from .engine import DEFAULT_MAX_RETRIES, SyncEngine, TransferQueue
from .messages import SyncNotification, SyncObserver, SyncOutcome, SyncPhase, SyncResult

__all__ = [
    "AUTO_SYNC_JOB_ID",
    "AutoSyncTrigger",
    "DEFAULT_MAX_RETRIES",
    "SyncEngine",
    "SyncNotification",
    "SyncObserver",
    "SyncOutcome",
    "SyncPhase",
    "SyncResult",
    "TransferQueue",
]
