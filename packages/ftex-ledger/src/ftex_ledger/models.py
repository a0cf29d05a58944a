"""Ledger data models: currencies, accounts, journal entries and receipts."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID


# Fractional digits carried per currency kind; journal columns are NUMERIC(24, 8)
FIAT_SCALE = 2
CRYPTO_SCALE = 8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CurrencyKind(str, Enum):
    """Which vocabulary a currency code belongs to."""
    FIAT = "fiat"
    CRYPTO = "crypto"


@dataclass(frozen=True, slots=True)
class Currency:
    """A currency code tagged with its vocabulary."""
    kind: CurrencyKind
    code: str

    def __str__(self) -> str:
        return self.code

    @property
    def scale(self) -> int:
        return FIAT_SCALE if self.kind == CurrencyKind.FIAT else CRYPTO_SCALE

    def quantize(self, amount: Decimal) -> Decimal:
        """Rescale an exact stored amount to this currency's precision."""
        return amount.quantize(Decimal(1).scaleb(-self.scale))

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "code": self.code}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Currency":
        return cls(kind=CurrencyKind(data["kind"]), code=str(data["code"]))


@dataclass(slots=True)
class Account:
    """
    A per-currency account owned by a single principal.

    The balance always equals the signed sum of the account's journal entries.
    """
    principal: UUID
    currency: Currency
    balance: Decimal = Decimal("0")
    last_tx: Decimal = Decimal("0")
    last_tx_ts: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal": str(self.principal),
            "currency": self.currency.code,
            "balance": str(self.balance),
            "last_tx": str(self.last_tx),
            "last_tx_ts": self.last_tx_ts.isoformat() if self.last_tx_ts else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class JournalEntry:
    """
    Immutable journal row.

    Debits carry a negative amount and credits a positive one. Both legs of
    an internal transfer share the same ``tx_id``.
    """
    tx_id: UUID
    principal: UUID
    currency: Currency
    amount: Decimal
    transacted_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": str(self.tx_id),
            "principal": str(self.principal),
            "currency": self.currency.code,
            "amount": str(self.amount),
            "transacted_at": self.transacted_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class TransferReceipt:
    """Post-transfer state of one account touched by a transfer."""
    tx_id: UUID
    principal: UUID
    currency: Currency
    balance: Decimal
    last_tx: Decimal
    tx_timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": str(self.tx_id),
            "principal": str(self.principal),
            "currency": self.currency.code,
            "balance": str(self.balance),
            "last_tx": str(self.last_tx),
            "tx_timestamp": self.tx_timestamp.isoformat(),
        }
