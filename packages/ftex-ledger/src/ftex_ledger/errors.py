"""Ledger error kinds raised by every ledger store implementation."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""

    def __init__(self, message: str, code: str = "LEDGER_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class InsufficientFundsError(LedgerError):
    """Debit would take an account balance below zero."""

    def __init__(self, account: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient funds in {account}: required {required}, available {available}",
            code="INSUFFICIENT_FUNDS",
            details={"account": account, "required": str(required), "available": str(available)},
        )


class AccountMissingError(LedgerError):
    """Referenced account does not exist."""

    def __init__(self, account: str):
        super().__init__(
            f"Account {account} does not exist",
            code="ACCOUNT_MISSING",
            details={"account": account},
        )


class AccountExistsError(LedgerError):
    """Account already opened for this principal and currency."""

    def __init__(self, account: str):
        super().__init__(
            f"Account {account} already exists",
            code="ACCOUNT_EXISTS",
            details={"account": account},
        )


class InvalidTransferError(LedgerError):
    """Transfer arguments rejected before touching any account."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, code="INVALID_TRANSFER", details=details)


class LedgerUnavailableError(LedgerError):
    """Backing store unreachable or failed mid-operation; retry is meaningful."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Ledger unavailable during {operation}",
            code="LEDGER_UNAVAILABLE",
            details={"operation": operation, "cause": type(cause).__name__ if cause else None},
        )


class PartialTransferError(LedgerError):
    """
    A transfer reported an incomplete double-entry pair.

    Part of the LedgerStore contract rather than the bundled stores: both
    write the two journal rows inside one transaction or lock and never
    raise it. Stores that post legs through a non-transactional backend
    raise it so callers can fail the exchange as an internal error.
    """

    def __init__(self, tx_id: str, entries: int):
        super().__init__(
            f"Transfer {tx_id} produced {entries} journal entries, expected 2",
            code="PARTIAL_TRANSFER",
            details={"tx_id": tx_id, "entries": entries},
        )


def account_label(principal: Any, currency: Any) -> str:
    """Human-readable account reference used in error details."""
    return f"{principal}:{currency}"
