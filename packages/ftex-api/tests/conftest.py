"""Pytest configuration and fixtures for FTeX API tests."""
from __future__ import annotations

import time
import uuid
from decimal import Decimal
from typing import AsyncGenerator

import jwt
import pytest
from httpx import ASGITransport, AsyncClient

from ftex_api.main import create_app
from ftex_core.cache import InMemoryOfferCache, OfferCache
from ftex_core.config import FtexSettings
from ftex_core.quotes import StaticRateOracle
from ftex_ledger import InMemoryLedgerStore

BASE = "/api/rest/v1"


@pytest.fixture
def settings() -> FtexSettings:
    return FtexSettings(
        _env_file=None,
        environment="test",
        log_level="WARNING",
        authorization={"jwt_key": "test-signing-key-0123456789abcdef"},
        sealing={"key": "test-sealing-key-0123456789abcde"},
    )


@pytest.fixture
def ledger() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def offer_cache() -> OfferCache:
    return OfferCache(InMemoryOfferCache())


@pytest.fixture
def app(settings, ledger, offer_cache):
    """Create a test application wired to in-memory collaborators."""
    oracle = StaticRateOracle(
        fiat_rates={("USD", "CAD"): Decimal("1.35")},
        crypto_rates={("USD", "BTC"): Decimal("0.00001667"), ("BTC", "USD"): Decimal("60000.00")},
    )
    return create_app(settings, ledger=ledger, offer_cache=offer_cache, oracle=oracle)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_token(settings):
    """Mint bearer tokens the way the authentication service does."""

    def _make(subject: str, expires_in: int = 300, **overrides) -> str:
        claims = {
            "sub": subject,
            "iss": settings.authorization.jwt_issuer,
            "aud": settings.authorization.jwt_audience,
            "exp": int(time.time()) + expires_in,
        }
        claims.update(overrides)
        return jwt.encode(claims, settings.authorization.jwt_key, algorithm=settings.authorization.jwt_algorithm)

    return _make


@pytest.fixture
def client_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def auth_headers(make_token, client_id) -> dict:
    return {"Authorization": f"Bearer {make_token(client_id)}"}


@pytest.fixture
def other_auth_headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(str(uuid.uuid4()))}"}


@pytest.fixture
def base() -> str:
    return BASE
