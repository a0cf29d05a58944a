"""Exchange offer lifecycle: issue and consume rate-locked offers.

An offer is issued by querying the rate oracle, storing the result in the
offer cache under a fresh 20-byte id, and handing the client only the
sealed form of that id. Consumption opens the sealed id and takes the offer
out of the cache in one atomic step, so each offer can be consumed at most
once. Anything that fails after the take still loses the offer; the client
re-issues.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple
from uuid import UUID

from ftex_ledger.models import Currency, CurrencyKind

from .cache import OfferCache
from .currency import (
    is_fiat_code,
    precision_for,
    truncate,
    validate_amount,
    validate_crypto_ticker,
    validate_fiat_code,
)
from .exceptions import (
    FtexForbiddenError,
    FtexInvalidRequestError,
    FtexNotFoundError,
    FtexOfferExpiredError,
    FtexUpstreamError,
)
from .models import OFFER_ID_BYTES, Offer
from .quotes import RateOracle, require_positive_rate
from .sealing import PURPOSE_OFFER, TokenSealer

logger = logging.getLogger(__name__)

DEFAULT_OFFER_TTL_SECONDS = 120.0

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OfferService:
    """Issues and consumes exchange offers."""

    def __init__(
        self,
        oracle: RateOracle,
        cache: OfferCache,
        sealer: TokenSealer,
        ttl_seconds: float = DEFAULT_OFFER_TTL_SECONDS,
        clock: Optional[Clock] = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError("offer TTL must be positive")
        self._oracle = oracle
        self._cache = cache
        self._sealer = sealer
        self._ttl = ttl_seconds
        self._clock = clock or _utcnow

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def issue_fiat_offer(
        self,
        principal: UUID,
        source: str,
        destination: str,
        amount: Any,
    ) -> Tuple[str, Offer]:
        """Quote a fiat to fiat conversion and lock it as an offer."""
        source_currency = validate_fiat_code(source, field="sourceCurrency")
        destination_currency = validate_fiat_code(destination, field="destinationCurrency")
        self._check_distinct(source_currency, destination_currency)
        source_amount = validate_amount(amount, CurrencyKind.FIAT, field="sourceAmount")

        quote = await self._oracle.fiat_quote(source_currency.code, destination_currency.code, source_amount)
        rate = require_positive_rate(quote.rate, self._oracle.name)
        if quote.amount < 0:
            raise FtexUpstreamError(provider=self._oracle.name, details={"result": str(quote.amount)})
        destination_amount = self._destination_amount(quote.amount, destination_currency)

        return await self._issue(
            principal=principal,
            kind=CurrencyKind.FIAT,
            source=source_currency,
            destination=destination_currency,
            source_amount=source_amount,
            rate=rate,
            destination_amount=destination_amount,
            is_purchase=False,
        )

    async def issue_crypto_offer(
        self,
        principal: UUID,
        source: str,
        destination: str,
        amount: Any,
        is_purchase: bool,
    ) -> Tuple[str, Offer]:
        """
        Quote a fiat/crypto conversion and lock it as an offer.

        A purchase converts fiat into crypto, a sale converts crypto into
        fiat. Exactly one leg must be fiat.
        """
        source_is_fiat = isinstance(source, str) and is_fiat_code(source)
        destination_is_fiat = isinstance(destination, str) and is_fiat_code(destination)
        if source_is_fiat == destination_is_fiat:
            raise FtexInvalidRequestError("exactly one of the source or destination must be a fiat currency")
        if source_is_fiat != is_purchase:
            raise FtexInvalidRequestError(
                "a purchase must convert fiat to crypto and a sale crypto to fiat",
                field="isPurchase",
            )

        if is_purchase:
            source_currency = validate_fiat_code(source, field="sourceCurrency")
            destination_currency = validate_crypto_ticker(destination, field="destinationCurrency")
        else:
            source_currency = validate_crypto_ticker(source, field="sourceCurrency")
            destination_currency = validate_fiat_code(destination, field="destinationCurrency")
        source_amount = validate_amount(amount, source_currency.kind, field="sourceAmount")

        quote = await self._oracle.crypto_quote(source_currency.code, destination_currency.code)
        rate = require_positive_rate(quote.rate, self._oracle.name)
        destination_amount = self._destination_amount(source_amount * rate, destination_currency)

        return await self._issue(
            principal=principal,
            kind=CurrencyKind.CRYPTO,
            source=source_currency,
            destination=destination_currency,
            source_amount=source_amount,
            rate=rate,
            destination_amount=destination_amount,
            is_purchase=is_purchase,
        )

    async def consume_offer(self, principal: UUID, sealed_offer_id: str) -> Offer:
        """
        Take an offer out of the cache on behalf of ``principal``.

        Raises:
            FtexInvalidRequestError: the sealed id cannot be opened.
            FtexOfferExpiredError: the offer expired, was already consumed
                or never existed.
            FtexForbiddenError: the offer belongs to another principal. The
                offer is gone from the cache regardless.
        """
        offer_id = self._sealer.open(sealed_offer_id, PURPOSE_OFFER, field="offerId")
        if len(offer_id) != OFFER_ID_BYTES:
            raise FtexInvalidRequestError("invalid offer token", field="offerId")

        try:
            offer = await self._cache.take(offer_id)
        except FtexNotFoundError:
            raise FtexOfferExpiredError() from None

        if offer.principal != principal:
            logger.warning(
                f"Offer {offer_id.hex()[:8]} presented by a principal other than its issuer; offer discarded"
            )
            raise FtexForbiddenError("offer does not belong to this client")

        if self._clock() > offer.expires_at:
            raise FtexOfferExpiredError()

        return offer

    @staticmethod
    def _check_distinct(source: Currency, destination: Currency) -> None:
        if source == destination:
            raise FtexInvalidRequestError("source and destination currencies must differ")

    @staticmethod
    def _destination_amount(amount: Decimal, destination: Currency) -> Decimal:
        destination_amount = truncate(amount, precision_for(destination.kind))
        if destination_amount <= 0:
            raise FtexInvalidRequestError("amount is too small to exchange", field="sourceAmount")
        return destination_amount

    async def _issue(
        self,
        principal: UUID,
        kind: CurrencyKind,
        source: Currency,
        destination: Currency,
        source_amount: Decimal,
        rate: Decimal,
        destination_amount: Decimal,
        is_purchase: bool,
    ) -> Tuple[str, Offer]:
        offer = Offer(
            offer_id=secrets.token_bytes(OFFER_ID_BYTES),
            principal=principal,
            kind=kind,
            source_currency=source,
            destination_currency=destination,
            source_amount=source_amount,
            rate=rate,
            destination_amount=destination_amount,
            expires_at=self._clock() + timedelta(seconds=self._ttl),
            is_purchase=is_purchase,
        )
        sealed = self._sealer.seal(offer.offer_id, PURPOSE_OFFER)
        await self._cache.put(offer, self._ttl)
        logger.info(
            f"Issued {kind.value} offer {offer.offer_id.hex()[:8]}: "
            f"{source_amount} {source} -> {destination_amount} {destination} @ {rate}"
        )
        return sealed, offer
