from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from offlinepay.connectivity.monitor import ConnectivityMonitor
from offlinepay.core.errors import RecipientNotFound, RemoteLedgerError, SelfTransferError
from offlinepay.store.offline_store import CachedRecipientInput, SqlAlchemyOfflineStore

from .client import RemoteLedger

logger = logging.getLogger(__name__)

RecipientSource = Literal["remote", "cache"]


@dataclass(frozen=True)
class ResolvedRecipient:
    id: str
    user_id: str
    display_name: str | None
    payment_id: str
    source: RecipientSource


def normalize_payment_id(payment_id: str) -> str:
    normalized = (payment_id or "").strip().upper()
    if not normalized:
        raise ValueError("Payment id must not be empty")
    return normalized


class RecipientDirectory:
    """Resolves payment ids to recipients, online first and from the cache otherwise.

    Successful online lookups refresh the offline cache. A failed online lookup
    falls back to the cache; a lookup the ledger answers with "no such profile"
    does not.
    """

    def __init__(
        self,
        store: SqlAlchemyOfflineStore,
        ledger: RemoteLedger,
        monitor: ConnectivityMonitor,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._monitor = monitor

    async def resolve(self, payment_id: str, *, requester_id: str) -> ResolvedRecipient:
        normalized = normalize_payment_id(payment_id)

        if not self._monitor.is_online:
            recipient = await self._from_cache(normalized)
            if recipient is None:
                raise RecipientNotFound(normalized, offline=True)
            return _reject_self(recipient, requester_id)

        try:
            profile = await self._ledger.lookup_recipient_by_payment_id(normalized)
        except RemoteLedgerError:
            logger.warning("Recipient lookup for %s failed; trying offline cache", normalized)
            recipient = await self._from_cache(normalized)
            if recipient is None:
                raise
            return _reject_self(recipient, requester_id)

        if profile is None:
            raise RecipientNotFound(normalized)
        if profile.user_id == requester_id:
            raise SelfTransferError("Cannot send to yourself")

        payment_id = normalize_payment_id(profile.payment_id)
        await self._store.cache_recipient(
            CachedRecipientInput(
                id=profile.id,
                user_id=profile.user_id,
                display_name=profile.display_name,
                payment_id=payment_id,
            )
        )
        return ResolvedRecipient(
            id=profile.id,
            user_id=profile.user_id,
            display_name=profile.display_name,
            payment_id=payment_id,
            source="remote",
        )

    async def _from_cache(self, payment_id: str) -> ResolvedRecipient | None:
        cached = await self._store.lookup_recipient(payment_id)
        if cached is None:
            return None
        return ResolvedRecipient(
            id=cached.id,
            user_id=cached.user_id,
            display_name=cached.display_name,
            payment_id=cached.payment_id,
            source="cache",
        )


def _reject_self(recipient: ResolvedRecipient, requester_id: str) -> ResolvedRecipient:
    if recipient.user_id == requester_id:
        raise SelfTransferError("Cannot send to yourself")
    return recipient


__all__ = [
    "RecipientDirectory",
    "RecipientSource",
    "ResolvedRecipient",
    "normalize_payment_id",
]
