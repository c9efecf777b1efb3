from .client import HttpLedgerClient, RemoteLedger
from .directory import RecipientDirectory, ResolvedRecipient, normalize_payment_id
from .models import ProcessTransferPayload, RecipientProfile

__all__ = [
    "HttpLedgerClient",
    "ProcessTransferPayload",
    "RecipientDirectory",
    "RecipientProfile",
    "RemoteLedger",
    "ResolvedRecipient",
    "normalize_payment_id",
]
