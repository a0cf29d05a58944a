"""Pytest configuration and fixtures for FTeX core tests."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ftex_core.cache import InMemoryOfferCache, OfferCache
from ftex_core.executor import ExchangeExecutor
from ftex_core.offers import OfferService
from ftex_core.pagination import PaginationService
from ftex_core.quotes import StaticRateOracle
from ftex_core.sealing import TokenSealer
from ftex_ledger import InMemoryLedgerStore

SEALING_KEY = b"0123456789abcdef0123456789abcdef"


class FakeClock:
    """Manually advanced clock shared by the offer service and the cache."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sealer():
    return TokenSealer(SEALING_KEY)


@pytest.fixture
def oracle():
    return StaticRateOracle(
        fiat_rates={("USD", "CAD"): Decimal("1.35"), ("CAD", "USD"): Decimal("0.74")},
        crypto_rates={("USD", "BTC"): Decimal("0.00001667"), ("BTC", "USD"): Decimal("60000.00")},
    )


@pytest.fixture
def offer_cache(clock):
    return OfferCache(InMemoryOfferCache(clock=clock.monotonic))


@pytest.fixture
def ledger(clock):
    return InMemoryLedgerStore(clock=clock.now)


@pytest.fixture
def offers(oracle, offer_cache, sealer, clock):
    return OfferService(oracle, offer_cache, sealer, ttl_seconds=2, clock=clock.now)


@pytest.fixture
def executor(offers, ledger):
    return ExchangeExecutor(offers, ledger)


@pytest.fixture
def pagination(ledger, sealer):
    return PaginationService(ledger, sealer, default_page_size=10, max_page_size=50)


@pytest.fixture
def principal():
    return uuid.uuid4()


@pytest.fixture
def other_principal():
    return uuid.uuid4()
