from .hashing import canonical_amount, derive_transfer_id, integrity_hash
from .models import TransferStatus
from .offline_store import (
    CachedRecipient,
    CachedRecipientInput,
    PendingTransfer,
    SqlAlchemyOfflineStore,
    TransferRequest,
    create_offline_engine,
    ensure_offline_schema,
)

__all__ = [
    "CachedRecipient",
    "CachedRecipientInput",
    "PendingTransfer",
    "SqlAlchemyOfflineStore",
    "TransferRequest",
    "TransferStatus",
    "canonical_amount",
    "create_offline_engine",
    "derive_transfer_id",
    "ensure_offline_schema",
    "integrity_hash",
]
