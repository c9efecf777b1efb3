"""Remote ledger access.

``RemoteLedger`` is the narrow interface the sync engine depends on.
``HttpLedgerClient`` implements it against a PostgREST-style API:

* ``GET  /rest/v1/transactions?select=id&transaction_hash=eq.<hash>&limit=1``
* ``POST /rest/v1/rpc/process_transaction``
* ``POST /rest/v1/rpc/get_profile_by_payment_id``

Transport failures and 5xx responses raise ``NetworkUnavailable``; 4xx
responses raise ``RemoteRejected`` carrying the server's ``message``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx
from pydantic import ValidationError

from offlinepay.core.errors import NetworkUnavailable, RemoteRejected

from .models import LedgerErrorBody, ProcessTransferPayload, RecipientProfile

logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "/rest/v1/transactions"
PROCESS_TRANSFER_PATH = "/rest/v1/rpc/process_transaction"
PROFILE_LOOKUP_PATH = "/rest/v1/rpc/get_profile_by_payment_id"


class RemoteLedger(Protocol):
    async def duplicate_exists(self, transfer_hash: str) -> bool:
        ...

    async def process_transfer(
        self,
        *,
        sender_id: str,
        receiver_id: str,
        amount: Decimal,
        description: str | None,
        is_offline: bool,
        transfer_hash: str,
        device_id: str,
    ) -> str:
        ...

    async def lookup_recipient_by_payment_id(
        self, payment_id: str
    ) -> Optional[RecipientProfile]:
        ...


class HttpLedgerClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_s),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def duplicate_exists(self, transfer_hash: str) -> bool:
        rows = await self._request(
            "GET",
            TRANSACTIONS_PATH,
            params={
                "select": "id",
                "transaction_hash": f"eq.{transfer_hash}",
                "limit": "1",
            },
        )
        return bool(rows)

    async def process_transfer(
        self,
        *,
        sender_id: str,
        receiver_id: str,
        amount: Decimal,
        description: str | None,
        is_offline: bool,
        transfer_hash: str,
        device_id: str,
    ) -> str:
        payload = ProcessTransferPayload(
            sender_id=sender_id,
            receiver_id=receiver_id,
            amount=amount,
            description=description,
            is_offline=is_offline,
            transfer_hash=transfer_hash,
            device_id=device_id,
        )
        data = await self._request(
            "POST",
            PROCESS_TRANSFER_PATH,
            json=payload.model_dump(by_alias=True, mode="json"),
        )
        if not isinstance(data, str) or not data:
            raise RemoteRejected("Ledger did not return a transaction id")
        return data

    async def lookup_recipient_by_payment_id(
        self, payment_id: str
    ) -> Optional[RecipientProfile]:
        data = await self._request(
            "POST", PROFILE_LOOKUP_PATH, json={"_payment_id": payment_id}
        )
        rows = data if isinstance(data, list) else ([data] if data else [])
        if not rows:
            return None
        try:
            return RecipientProfile.model_validate(rows[0])
        except ValidationError as exc:
            raise NetworkUnavailable(f"Ledger returned a malformed profile: {exc}") from exc

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise NetworkUnavailable(
                f"Ledger unreachable ({type(exc).__name__})"
            ) from exc

        status = response.status_code
        if status >= 500:
            raise NetworkUnavailable(f"Ledger server error HTTP {status}")
        if status >= 400:
            raise RemoteRejected(_error_message(response), status_code=status)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkUnavailable("Ledger returned a non-JSON response") from exc


def _error_message(response: httpx.Response) -> str:
    try:
        body = LedgerErrorBody.model_validate(response.json())
    except (ValueError, ValidationError):
        return f"Ledger rejected request (HTTP {response.status_code})"
    return body.message or f"Ledger rejected request (HTTP {response.status_code})"


__all__ = [
    "HttpLedgerClient",
    "PROCESS_TRANSFER_PATH",
    "PROFILE_LOOKUP_PATH",
    "RemoteLedger",
    "TRANSACTIONS_PATH",
]
