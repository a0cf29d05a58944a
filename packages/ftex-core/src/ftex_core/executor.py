"""Exchange executor: turns a consumed offer into an atomic ledger transfer.

Double-entry atomicity belongs to the ledger store. The executor only
consumes the offer, picks the debit and credit legs, and maps ledger
failures onto client-facing error kinds.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple
from uuid import UUID

from ftex_ledger.errors import (
    AccountMissingError,
    InsufficientFundsError,
    LedgerError,
    PartialTransferError,
)
from ftex_ledger.models import Currency, CurrencyKind, TransferReceipt
from ftex_ledger.store import LedgerStore

from .exceptions import (
    FUNDS_MESSAGE,
    FtexInternalError,
    FtexInvalidRequestError,
    FtexPreconditionFailedError,
    FtexTransientUpstreamError,
)
from .models import Offer
from .offers import OfferService

logger = logging.getLogger(__name__)

Receipts = Tuple[TransferReceipt, TransferReceipt]


def transfer_legs(offer: Offer) -> Tuple[Currency, Currency]:
    """
    Return ``(debit, credit)`` currencies for an offer.

    Raises FtexInternalError if the offer's legs contradict its kind or
    direction, which cannot happen for offers issued by OfferService.
    """
    source, destination = offer.source_currency, offer.destination_currency
    if offer.kind == CurrencyKind.FIAT:
        valid = source.kind == CurrencyKind.FIAT and destination.kind == CurrencyKind.FIAT
    elif offer.is_purchase:
        valid = source.kind == CurrencyKind.FIAT and destination.kind == CurrencyKind.CRYPTO
    else:
        valid = source.kind == CurrencyKind.CRYPTO and destination.kind == CurrencyKind.FIAT

    if not valid or source == destination:
        raise FtexInternalError(
            "offer legs are inconsistent with its direction",
            details={"source": str(source), "destination": str(destination), "kind": offer.kind.value},
        )
    return source, destination


class ExchangeExecutor:
    """Executes fiat and crypto exchanges against the ledger."""

    def __init__(self, offers: OfferService, ledger: LedgerStore):
        self._offers = offers
        self._ledger = ledger

    async def exchange_fiat(self, principal: UUID, sealed_offer_id: str) -> Receipts:
        return await self.exchange(principal, sealed_offer_id, expected_kind=CurrencyKind.FIAT)

    async def exchange_crypto(self, principal: UUID, sealed_offer_id: str) -> Receipts:
        return await self.exchange(principal, sealed_offer_id, expected_kind=CurrencyKind.CRYPTO)

    async def exchange(
        self,
        principal: UUID,
        sealed_offer_id: str,
        expected_kind: Optional[CurrencyKind] = None,
    ) -> Receipts:
        """
        Consume an offer and execute it as one internal transfer.

        Returns ``(source_receipt, destination_receipt)``.

        Raises:
            FtexOfferExpiredError / FtexForbiddenError / FtexInvalidRequestError:
                from offer consumption.
            FtexInvalidRequestError: offer kind does not match the endpoint.
            FtexPreconditionFailedError: missing account or insufficient funds.
            FtexTransientUpstreamError: any other ledger failure.
            FtexInternalError: the ledger reported a partial transfer.
        """
        offer = await self._offers.consume_offer(principal, sealed_offer_id)
        if expected_kind is not None and offer.kind != expected_kind:
            raise FtexInvalidRequestError(f"not a valid {expected_kind.value} exchange offer", field="offerId")

        debit, credit = transfer_legs(offer)
        try:
            source_receipt, destination_receipt = await self._ledger.internal_transfer(
                principal,
                debit,
                offer.source_amount,
                credit,
                offer.destination_amount,
            )
        except (InsufficientFundsError, AccountMissingError) as e:
            logger.info(f"Exchange rejected by ledger: {e.code}: {e.message}")
            raise FtexPreconditionFailedError(FUNDS_MESSAGE) from e
        except PartialTransferError as e:
            logger.critical(f"Ledger reported a partial transfer: {e.message}", extra={"details": e.details})
            raise FtexInternalError("exchange could not be completed", details={"tx_id": e.details.get("tx_id")}) from e
        except LedgerError as e:
            logger.error(f"Exchange failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e

        if source_receipt.tx_id != destination_receipt.tx_id:
            logger.critical(
                f"Ledger receipts disagree on tx id: {source_receipt.tx_id} != {destination_receipt.tx_id}"
            )
            raise FtexInternalError("exchange could not be completed")

        logger.info(
            f"Exchanged {offer.source_amount} {debit} -> {offer.destination_amount} {credit} "
            f"in tx {source_receipt.tx_id}"
        )
        return source_receipt, destination_receipt
