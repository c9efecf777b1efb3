"""Offline transfer queue and ledger synchronization for OfflinePay."""

__version__ = "0.1.0"
