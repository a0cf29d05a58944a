"""Double-entry ledger store for FTeX accounts."""
from __future__ import annotations

from .errors import (
    AccountExistsError,
    AccountMissingError,
    InsufficientFundsError,
    InvalidTransferError,
    LedgerError,
    LedgerUnavailableError,
    PartialTransferError,
)
from .models import Account, Currency, CurrencyKind, JournalEntry, TransferReceipt
from .store import InMemoryLedgerStore, LedgerStore

__all__ = [
    "Account",
    "AccountExistsError",
    "AccountMissingError",
    "Currency",
    "CurrencyKind",
    "InMemoryLedgerStore",
    "InsufficientFundsError",
    "InvalidTransferError",
    "JournalEntry",
    "LedgerError",
    "LedgerStore",
    "LedgerUnavailableError",
    "PartialTransferError",
    "TransferReceipt",
    "create_ledger_store",
]


def create_ledger_store(dsn: str = "") -> LedgerStore:
    """
    Pick a ledger backend from a DSN.

    ``postgresql://`` and ``postgres://`` select PostgreSQL; empty or
    ``memory://`` selects the in-memory store. Anything else raises
    ValueError rather than falling back to a volatile ledger.
    """
    if dsn.startswith(("postgresql://", "postgres://")):
        from .db_engine import PostgresLedgerStore

        return PostgresLedgerStore(dsn)
    if dsn in ("", "memory://"):
        return InMemoryLedgerStore()

    scheme, sep, _ = dsn.partition("://")
    raise ValueError(f"unsupported ledger DSN scheme: {scheme!r}" if sep else "ledger DSN has no scheme")
