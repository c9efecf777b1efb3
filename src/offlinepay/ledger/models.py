from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from offlinepay.store.hashing import AMOUNT_DECIMAL_PLACES, AMOUNT_MAX_DIGITS


class RecipientProfile(BaseModel):
    """Public payment profile returned by ``get_profile_by_payment_id``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    user_id: str
    display_name: Optional[str] = None
    payment_id: str


class ProcessTransferPayload(BaseModel):
    """Arguments of the ledger's ``process_transaction`` RPC."""

    model_config = ConfigDict(populate_by_name=True)

    sender_id: str = Field(alias="_sender_id")
    receiver_id: str = Field(alias="_receiver_id")
    amount: Decimal = Field(
        alias="_amount",
        gt=0,
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
    )
    description: Optional[str] = Field(default=None, alias="_description")
    is_offline: bool = Field(default=True, alias="_is_offline")
    transfer_hash: Optional[str] = Field(default=None, alias="_transaction_hash")
    device_id: Optional[str] = Field(default=None, alias="_device_id")


class LedgerErrorBody(BaseModel):
    """PostgREST error envelope (``message``, ``code``, ``details``, ``hint``)."""

    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None
    code: Optional[str] = None
    details: Optional[str] = None
    hint: Optional[str] = None


__all__ = ["LedgerErrorBody", "ProcessTransferPayload", "RecipientProfile"]
