"""Error taxonomy shared by the store, the ledger adapters and the sync engine."""

from __future__ import annotations


class OfflinePayError(Exception):
    """Base class for every error raised by ``offlinepay``."""


class StorageUnavailable(OfflinePayError):
    """The local durable store could not be opened, read or written.

    Fatal to the operation in progress; never retried by the sync engine.
    """

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        message = f"Offline store unavailable during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RemoteLedgerError(OfflinePayError):
    """A call to the remote ledger did not succeed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class RemoteRejected(RemoteLedgerError):
    """The ledger refused the transfer (insufficient funds, unknown receiver, ...)."""

    def __init__(self, reason: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(reason)


class NetworkUnavailable(RemoteLedgerError):
    """The ledger could not be reached, timed out, or failed server-side."""


class RecipientNotFound(OfflinePayError):
    """No profile is known for a payment identifier."""

    def __init__(self, payment_id: str, *, offline: bool = False) -> None:
        self.payment_id = payment_id
        self.offline = offline
        where = "in the offline cache" if offline else "on the ledger"
        super().__init__(f"No recipient found for {payment_id} {where}")


class SelfTransferError(OfflinePayError):
    """The resolved recipient is the requesting user."""


__all__ = [
    "NetworkUnavailable",
    "OfflinePayError",
    "RecipientNotFound",
    "RemoteLedgerError",
    "RemoteRejected",
    "SelfTransferError",
    "StorageUnavailable",
]
