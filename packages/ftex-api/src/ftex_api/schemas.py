"""Request and response bodies. JSON uses camelCase; money travels as decimal strings."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ftex_core.models import Offer
from ftex_ledger.models import Account, Currency, JournalEntry, TransferReceipt


def _plain(value: Decimal, currency: Optional[Currency] = None) -> str:
    """Render a decimal in positional notation, never as 1E-7."""
    if currency is not None:
        value = currency.quantize(value)
    return format(value, "f")


class FtexModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class OpenFiatAccountRequest(FtexModel):
    currency: str


class OpenCryptoAccountRequest(FtexModel):
    ticker: str


class DepositRequest(FtexModel):
    currency: str
    amount: str


class FiatOfferRequest(FtexModel):
    source_currency: str
    destination_currency: str
    source_amount: str


class CryptoOfferRequest(FiatOfferRequest):
    is_purchase: bool


class TransferRequest(FtexModel):
    offer_id: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OpenAccountResponse(FtexModel):
    client_id: str
    currency: str


class OpenCryptoAccountResponse(FtexModel):
    client_id: str
    ticker: str


class ReceiptResponse(FtexModel):
    tx_id: str
    client_id: str
    currency: str
    balance: str
    last_tx: str
    tx_timestamp: datetime

    @classmethod
    def from_receipt(cls, receipt: TransferReceipt) -> "ReceiptResponse":
        return cls(
            tx_id=str(receipt.tx_id),
            client_id=str(receipt.principal),
            currency=receipt.currency.code,
            balance=_plain(receipt.balance, receipt.currency),
            last_tx=_plain(receipt.last_tx, receipt.currency),
            tx_timestamp=receipt.tx_timestamp,
        )


class ExchangeResponse(FtexModel):
    source_receipt: ReceiptResponse
    destination_receipt: ReceiptResponse


class OfferResponse(FtexModel):
    offer_id: str
    source_currency: str
    destination_currency: str
    rate: str
    debit_amount: str
    dest_amount: str
    expires_at_unix: int
    is_purchase: Optional[bool] = None

    @classmethod
    def from_offer(cls, sealed_offer_id: str, offer: Offer, crypto: bool = False) -> "OfferResponse":
        return cls(
            offer_id=sealed_offer_id,
            source_currency=offer.source_currency.code,
            destination_currency=offer.destination_currency.code,
            rate=_plain(offer.rate),
            debit_amount=_plain(offer.debit_amount, offer.source_currency),
            dest_amount=_plain(offer.destination_amount, offer.destination_currency),
            expires_at_unix=offer.expires_at_unix,
            is_purchase=offer.is_purchase if crypto else None,
        )


class AccountResponse(FtexModel):
    currency: str
    balance: str
    last_tx: str
    last_tx_ts: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            currency=account.currency.code,
            balance=_plain(account.balance, account.currency),
            last_tx=_plain(account.last_tx, account.currency),
            last_tx_ts=account.last_tx_ts,
            created_at=account.created_at,
        )


class BalancePageResponse(FtexModel):
    account_balances: List[AccountResponse]
    page_cursor: str = ""


class JournalEntryResponse(FtexModel):
    tx_id: str
    client_id: str
    currency: str
    amount: str
    transacted_at: datetime

    @classmethod
    def from_entry(cls, entry: JournalEntry) -> "JournalEntryResponse":
        return cls(
            tx_id=str(entry.tx_id),
            client_id=str(entry.principal),
            currency=entry.currency.code,
            amount=_plain(entry.amount, entry.currency),
            transacted_at=entry.transacted_at,
        )


class TransactionPageResponse(FtexModel):
    transactions: List[JournalEntryResponse]
    page_cursor: str = ""


class TransactionDetailsResponse(FtexModel):
    transactions: List[JournalEntryResponse]
