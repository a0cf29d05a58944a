"""Rate oracle clients.

The oracle is a read-only quote source: fiat pairs are quoted with the
converted amount, crypto pairs with a rate only. Response bodies are parsed
with ``parse_float=Decimal`` so no quote ever passes through a binary float.
"""
from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

import httpx

from .config import QuotesSettings
from .exceptions import FtexInvalidRequestError, FtexUpstreamError

logger = logging.getLogger(__name__)

# CoinAPI answers unknown asset ids with this non-standard status
CRYPTO_UNKNOWN_ASSET_STATUS = 550

# Error texts CoinAPI uses in 4xx bodies for assets or pairs it does not know
_UNKNOWN_ASSET_RE = re.compile(
    r"unknown (asset|symbol|currency)|invalid asset|asset[^.]*not (found|supported)|don'?t have",
    re.IGNORECASE,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FiatQuote:
    """Fiat conversion quote: ``amount`` is the converted destination amount."""
    source: str
    destination: str
    rate: Decimal
    amount: Decimal
    provider: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class CryptoQuote:
    """Price of one unit of ``base`` expressed in ``quote``."""
    base: str
    quote: str
    rate: Decimal
    provider: str
    timestamp: datetime = field(default_factory=_utcnow)


def _as_decimal(value: Any, provider: str, name: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise FtexUpstreamError(provider=provider, details={"field": name})
    try:
        result = Decimal(value) if isinstance(value, (int, str, Decimal)) else None
    except InvalidOperation:
        result = None
    if result is None or not result.is_finite():
        logger.error(f"{provider} returned a non-decimal {name}: {value!r}")
        raise FtexUpstreamError(provider=provider, details={"field": name})
    return result


def require_positive_rate(rate: Decimal, provider: str) -> Decimal:
    """Zero or negative rates are an upstream fault, never a tradeable price."""
    if rate <= 0:
        logger.error(f"{provider} returned a non-positive rate: {rate}")
        raise FtexUpstreamError(provider=provider, details={"rate": str(rate)})
    return rate


class RateOracle(ABC):
    """Abstract interface for exchange rate providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""

    @abstractmethod
    async def fiat_quote(self, source: str, destination: str, amount: Decimal) -> FiatQuote:
        """Quote converting ``amount`` of ``source`` into ``destination``."""

    @abstractmethod
    async def crypto_quote(self, base: str, quote: str) -> CryptoQuote:
        """Quote the price of one ``base`` unit in ``quote``."""

    async def close(self) -> None:
        return None


class StaticRateOracle(RateOracle):
    """
    Static rate oracle for development and testing.

    Explicit pair tables take precedence; otherwise rates are crossed
    through USD using the fixed tables below.
    """

    # Units of each fiat currency per USD
    _FIAT_PER_USD = {
        "USD": Decimal("1"),
        "EUR": Decimal("0.92"),
        "GBP": Decimal("0.79"),
        "JPY": Decimal("149.50"),
        "CAD": Decimal("1.36"),
        "AUD": Decimal("1.53"),
        "CHF": Decimal("0.88"),
        "AED": Decimal("3.6725"),
    }

    # USD price of one unit of each crypto asset
    _CRYPTO_USD_PRICE = {
        "BTC": Decimal("60000"),
        "ETH": Decimal("3000"),
        "USDC": Decimal("1"),
    }

    def __init__(
        self,
        fiat_rates: Optional[Dict[Tuple[str, str], Decimal]] = None,
        crypto_rates: Optional[Dict[Tuple[str, str], Decimal]] = None,
    ):
        self._fiat_rates = dict(fiat_rates or {})
        self._crypto_rates = dict(crypto_rates or {})

    @property
    def name(self) -> str:
        return "static"

    def _usd_price(self, code: str) -> Optional[Decimal]:
        if code in self._CRYPTO_USD_PRICE:
            return self._CRYPTO_USD_PRICE[code]
        if code in self._FIAT_PER_USD:
            return Decimal(1) / self._FIAT_PER_USD[code]
        return None

    def _rate(self, table: Dict[Tuple[str, str], Decimal], base: str, quote: str) -> Decimal:
        if (base, quote) in table:
            return require_positive_rate(table[(base, quote)], self.name)
        base_usd, quote_usd = self._usd_price(base), self._usd_price(quote)
        if base_usd is None or quote_usd is None:
            raise FtexUpstreamError(provider=self.name, details={"pair": f"{base}/{quote}"})
        return require_positive_rate(base_usd / quote_usd, self.name)

    async def fiat_quote(self, source: str, destination: str, amount: Decimal) -> FiatQuote:
        rate = self._rate(self._fiat_rates, source, destination)
        return FiatQuote(source, destination, rate, amount * rate, self.name)

    async def crypto_quote(self, base: str, quote: str) -> CryptoQuote:
        rate = self._rate(self._crypto_rates, base, quote)
        return CryptoQuote(base, quote, rate, self.name)


class HttpRateOracle(RateOracle):
    """
    Rate oracle backed by two HTTP quote providers.

    Fiat: ``GET <endpoint>?from=&to=&amount=`` answering
    ``{"success", "info": {"rate", "timestamp"}, "result"}``.
    Crypto: ``GET <endpoint>/<base>/<quote>`` answering
    ``{"asset_id_base", "asset_id_quote", "time", "rate"}``.
    """

    def __init__(
        self,
        settings: QuotesSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings
        self._fiat_client = self._client(settings.fiat_currency.header_key, settings.fiat_currency.api_key, transport)
        self._crypto_client = self._client(
            settings.crypto_currency.header_key, settings.crypto_currency.api_key, transport
        )

    def _client(
        self,
        header_key: str,
        api_key: str,
        transport: Optional[httpx.AsyncBaseTransport],
    ) -> httpx.AsyncClient:
        headers = {
            "User-Agent": self._settings.connection.user_agent,
            "Accept": "application/json",
        }
        if api_key:
            headers[header_key] = api_key
        return httpx.AsyncClient(
            headers=headers,
            timeout=self._settings.connection.timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "http"

    @staticmethod
    def _body(response: httpx.Response, provider: str) -> Dict[str, Any]:
        try:
            body = json.loads(response.text, parse_float=Decimal)
        except ValueError as e:
            logger.error(f"{provider} returned a non-JSON body: {e}")
            raise FtexUpstreamError(provider=provider) from e
        if not isinstance(body, dict):
            raise FtexUpstreamError(provider=provider)
        return body

    @staticmethod
    def _is_unknown_asset(response: httpx.Response) -> bool:
        """True for a 4xx reply whose error text names an unknown asset."""
        if not 400 <= response.status_code < 500:
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        message = body.get("error") if isinstance(body, dict) else None
        return isinstance(message, str) and bool(_UNKNOWN_ASSET_RE.search(message))

    async def _get(self, client: httpx.AsyncClient, provider: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await client.get(url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{provider} request failed: {type(e).__name__}: {e}")
            raise FtexUpstreamError(provider=provider) from e

    async def fiat_quote(self, source: str, destination: str, amount: Decimal) -> FiatQuote:
        provider = "fiat"
        response = await self._get(
            self._fiat_client,
            provider,
            self._settings.fiat_currency.endpoint,
            params={"from": source, "to": destination, "amount": str(amount)},
        )
        if response.status_code != httpx.codes.OK:
            logger.warning(f"Fiat quote {source}/{destination} failed with status {response.status_code}")
            raise FtexUpstreamError(provider=provider, details={"status": response.status_code})

        body = self._body(response, provider)
        if not body.get("success", False):
            raise FtexInvalidRequestError("invalid fiat currency code")

        info = body.get("info")
        if not isinstance(info, dict) or "rate" not in info or "result" not in body:
            raise FtexUpstreamError(provider=provider)

        rate = require_positive_rate(_as_decimal(info["rate"], provider, "rate"), provider)
        converted = _as_decimal(body["result"], provider, "result")
        if converted < 0:
            raise FtexUpstreamError(provider=provider, details={"result": str(converted)})

        timestamp = _utcnow()
        if isinstance(info.get("timestamp"), int):
            timestamp = datetime.fromtimestamp(info["timestamp"], tz=timezone.utc)
        return FiatQuote(source, destination, rate, converted, provider, timestamp)

    async def crypto_quote(self, base: str, quote: str) -> CryptoQuote:
        provider = "crypto"
        endpoint = self._settings.crypto_currency.endpoint.rstrip("/")
        response = await self._get(self._crypto_client, provider, f"{endpoint}/{base}/{quote}")

        if response.status_code == CRYPTO_UNKNOWN_ASSET_STATUS or self._is_unknown_asset(response):
            raise FtexInvalidRequestError("invalid cryptocurrency ticker")
        if response.status_code != httpx.codes.OK:
            logger.warning(f"Crypto quote {base}/{quote} failed with status {response.status_code}")
            raise FtexUpstreamError(provider=provider, details={"status": response.status_code})

        body = self._body(response, provider)
        if "rate" not in body:
            raise FtexUpstreamError(provider=provider)
        if str(body.get("asset_id_base", base)).upper() != base or str(body.get("asset_id_quote", quote)).upper() != quote:
            logger.error(f"Crypto quote answered for a different pair: {body.get('asset_id_base')}/{body.get('asset_id_quote')}")
            raise FtexUpstreamError(provider=provider)

        rate = require_positive_rate(_as_decimal(body["rate"], provider, "rate"), provider)
        return CryptoQuote(base, quote, rate, provider)

    async def close(self) -> None:
        await self._fiat_client.aclose()
        await self._crypto_client.aclose()
