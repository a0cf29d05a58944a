"""Exchange offer model."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID

from ftex_ledger.models import Currency, CurrencyKind

OFFER_ID_BYTES = 20


@dataclass(frozen=True, slots=True)
class Offer:
    """
    A short-lived, single-use, principal-bound price lock.

    ``offer_id`` never leaves the server; clients only ever see its sealed
    form. ``kind`` is FIAT when both legs are fiat and CRYPTO when one leg
    is a crypto ticker, in which case ``is_purchase`` means fiat to crypto.
    """
    offer_id: bytes
    principal: UUID
    kind: CurrencyKind
    source_currency: Currency
    destination_currency: Currency
    source_amount: Decimal
    rate: Decimal
    destination_amount: Decimal
    expires_at: datetime
    is_purchase: bool = False

    @property
    def debit_amount(self) -> Decimal:
        return self.source_amount

    @property
    def expires_at_unix(self) -> int:
        return int(self.expires_at.timestamp())

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form. The offer id is the cache key and is not repeated here."""
        return {
            "principal": str(self.principal),
            "kind": self.kind.value,
            "source_currency": self.source_currency.to_dict(),
            "destination_currency": self.destination_currency.to_dict(),
            "source_amount": str(self.source_amount),
            "rate": str(self.rate),
            "destination_amount": str(self.destination_amount),
            "expires_at": self.expires_at.isoformat(),
            "is_purchase": self.is_purchase,
        }

    @classmethod
    def from_dict(cls, offer_id: bytes, data: Dict[str, Any]) -> "Offer":
        return cls(
            offer_id=offer_id,
            principal=UUID(data["principal"]),
            kind=CurrencyKind(data["kind"]),
            source_currency=Currency.from_dict(data["source_currency"]),
            destination_currency=Currency.from_dict(data["destination_currency"]),
            source_amount=Decimal(data["source_amount"]),
            rate=Decimal(data["rate"]),
            destination_amount=Decimal(data["destination_amount"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            is_purchase=bool(data.get("is_purchase", False)),
        )
