"""Currency vocabularies and decimal discipline.

Monetary values are always ``Decimal``; binary floats are rejected outright.
Fiat amounts carry at most 2 fractional digits and crypto amounts at most 8.
Excess precision is never rounded away silently: inputs must already be
representable at their currency's precision.
"""
from __future__ import annotations

import re
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Optional

from ftex_ledger.models import CRYPTO_SCALE, FIAT_SCALE, Currency, CurrencyKind

from .exceptions import FtexInvalidRequestError

FIAT_PRECISION = FIAT_SCALE
CRYPTO_PRECISION = CRYPTO_SCALE

MAX_TICKER_LENGTH = 6

# ISO-4217 circulating currencies; precious metals, test and fund codes are excluded
FIAT_CODES = frozenset({
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
    "BSD", "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLP", "CNY",
    "COP", "CRC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD", "EGP",
    "ERN", "ETB", "EUR", "FJD", "FKP", "GBP", "GEL", "GHS", "GIP", "GMD",
    "GNF", "GTQ", "GYD", "HKD", "HNL", "HTG", "HUF", "IDR", "ILS", "INR",
    "IQD", "IRR", "ISK", "JMD", "JOD", "JPY", "KES", "KGS", "KHR", "KMF",
    "KPW", "KRW", "KWD", "KYD", "KZT", "LAK", "LBP", "LKR", "LRD", "LSL",
    "LYD", "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR",
    "MVR", "MWK", "MXN", "MYR", "MZN", "NAD", "NGN", "NIO", "NOK", "NPR",
    "NZD", "OMR", "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG", "QAR",
    "RON", "RSD", "RUB", "RWF", "SAR", "SBD", "SCR", "SDG", "SEK", "SGD",
    "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SVC", "SYP", "SZL", "THB",
    "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX",
    "USD", "UYU", "UZS", "VES", "VND", "VUV", "WST", "XAF", "XCD", "XOF",
    "XPF", "YER", "ZAR", "ZMW", "ZWL",
})

_TICKER_RE = re.compile(r"^[A-Z0-9]{1,%d}$" % MAX_TICKER_LENGTH)


def precision_for(kind: CurrencyKind) -> int:
    """Number of fractional digits carried by a currency kind."""
    return FIAT_PRECISION if kind == CurrencyKind.FIAT else CRYPTO_PRECISION


def is_fiat_code(code: str) -> bool:
    return code.strip().upper() in FIAT_CODES


def validate_fiat_code(code: Any, field: str = "currency") -> Currency:
    """Normalize and validate an ISO-4217 code."""
    if not isinstance(code, str):
        raise FtexInvalidRequestError("invalid fiat currency code", field=field)
    normalized = code.strip().upper()
    if normalized not in FIAT_CODES:
        raise FtexInvalidRequestError("invalid fiat currency code", field=field)
    return Currency(kind=CurrencyKind.FIAT, code=normalized)


def validate_crypto_ticker(ticker: Any, field: str = "ticker") -> Currency:
    """
    Normalize and syntactically validate a crypto ticker.

    Whether the ticker is actually known is decided by the rate oracle at
    quote time. Codes from the fiat vocabulary are rejected so every
    currency pair has an unambiguous fiat leg.
    """
    if not isinstance(ticker, str):
        raise FtexInvalidRequestError("invalid cryptocurrency ticker", field=field)
    normalized = ticker.strip().upper()
    if not _TICKER_RE.match(normalized) or normalized in FIAT_CODES:
        raise FtexInvalidRequestError("invalid cryptocurrency ticker", field=field)
    return Currency(kind=CurrencyKind.CRYPTO, code=normalized)


def parse_decimal(value: Any, field: str = "amount") -> Decimal:
    """Convert text or integers to Decimal. Floats are refused."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise FtexInvalidRequestError("amounts must be sent as decimal strings", field=field)
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise FtexInvalidRequestError("invalid decimal amount", field=field) from None
    else:
        raise FtexInvalidRequestError("invalid decimal amount", field=field)

    if not result.is_finite():
        raise FtexInvalidRequestError("invalid decimal amount", field=field)
    return result


def truncate(amount: Decimal, places: int) -> Decimal:
    """Truncate toward zero to ``places`` fractional digits."""
    try:
        return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)
    except InvalidOperation:
        raise FtexInvalidRequestError("amount exceeds supported precision") from None


def validate_amount(
    value: Any,
    kind: CurrencyKind,
    field: str = "amount",
    allow_zero: bool = False,
) -> Decimal:
    """
    Validate a monetary input against its currency's precision.

    Returns the truncated value. Raises FtexInvalidRequestError if the
    amount is negative, zero (unless ``allow_zero``) or carries more
    fractional digits than the currency allows.
    """
    amount = parse_decimal(value, field=field)
    if amount < 0:
        raise FtexInvalidRequestError("amount must not be negative", field=field)
    if amount == 0 and not allow_zero:
        raise FtexInvalidRequestError("amount must be greater than zero", field=field)

    places = precision_for(kind)
    truncated = truncate(amount, places)
    if truncated != amount:
        raise FtexInvalidRequestError(
            f"amount supports at most {places} decimal places",
            field=field,
        )
    return truncated


def currency_for(kind: CurrencyKind, code: str, field: Optional[str] = None) -> Currency:
    """Validate ``code`` in the vocabulary of ``kind``."""
    if kind == CurrencyKind.FIAT:
        return validate_fiat_code(code, field=field or "currency")
    return validate_crypto_ticker(code, field=field or "ticker")


__all__ = [
    "CRYPTO_PRECISION",
    "Currency",
    "CurrencyKind",
    "FIAT_CODES",
    "FIAT_PRECISION",
    "currency_for",
    "is_fiat_code",
    "parse_decimal",
    "precision_for",
    "truncate",
    "validate_amount",
    "validate_crypto_ticker",
    "validate_fiat_code",
]
