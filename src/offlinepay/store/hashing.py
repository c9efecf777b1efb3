"""Content addressing for queued transfers.

The integrity hash is the only deduplication key shared with the remote
ledger, so it must be a pure function of the fields that define a transfer.
"""

from __future__ import annotations

import hashlib
from decimal import Decimal

TRANSFER_ID_PREFIX = "tx"

# Ledger amounts are DECIMAL(12, 2).
AMOUNT_MAX_DIGITS = 12
AMOUNT_DECIMAL_PLACES = 2


def canonical_amount(amount: Decimal | int | str) -> str:
    """Render *amount* as a fixed-point decimal string without exponent.

    ``Decimal("100")``, ``Decimal("100.0")`` and ``100`` all map to ``"100"``
    so equal amounts always hash equally.
    """
    # Exact at any magnitude; no decimal-context rounding.
    text = format(Decimal(str(amount)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def integrity_hash(
    *,
    sender_id: str,
    receiver_id: str,
    amount: Decimal,
    created_at_ms: int,
    device_id: str,
) -> str:
    """SHA-256 hex digest of ``sender:receiver:amount:timestamp:device``."""
    seed = ":".join(
        (sender_id, receiver_id, canonical_amount(amount), str(created_at_ms), device_id)
    )
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def derive_transfer_id(created_at_ms: int, transfer_hash: str) -> str:
    """Local identifier: ``tx-<created_at_ms>-<first 8 hex of the hash>``."""
    return f"{TRANSFER_ID_PREFIX}-{created_at_ms}-{transfer_hash[:8]}"


__all__ = [
    "AMOUNT_DECIMAL_PLACES",
    "AMOUNT_MAX_DIGITS",
    "canonical_amount",
    "derive_transfer_id",
    "integrity_hash",
]
