"""
Tests for ftex_core.cache module.

Tests cover:
- In-memory backend single-use take and TTL
- Typed OfferCache storage
- Redis backend error mapping
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ftex_core.cache import InMemoryOfferCache, OfferCache, RedisOfferCache, create_offer_cache
from ftex_core.exceptions import FtexCacheUnavailableError, FtexInternalError, FtexNotFoundError
from ftex_core.models import Offer
from ftex_ledger.models import Currency, CurrencyKind


def _offer(offer_id: bytes = b"\x01" * 20) -> Offer:
    return Offer(
        offer_id=offer_id,
        principal=uuid.uuid4(),
        kind=CurrencyKind.FIAT,
        source_currency=Currency(CurrencyKind.FIAT, "USD"),
        destination_currency=Currency(CurrencyKind.FIAT, "CAD"),
        source_amount=Decimal("100.00"),
        rate=Decimal("1.35"),
        destination_amount=Decimal("135.00"),
        expires_at=datetime(2024, 6, 1, 12, 2, tzinfo=timezone.utc),
    )


class TestInMemoryOfferCache:
    """Tests for InMemoryOfferCache."""

    @pytest.mark.asyncio
    async def test_take_is_single_use(self):
        """Should return the value once and then nothing."""
        cache = InMemoryOfferCache()
        await cache.put("k", "v", 60)

        assert await cache.take("k") == "v"
        assert await cache.take("k") is None

    @pytest.mark.asyncio
    async def test_expired_value_not_returned(self, clock):
        """Should treat values past their TTL as absent."""
        cache = InMemoryOfferCache(clock=clock.monotonic)
        await cache.put("k", "v", 2)

        clock.advance(3)

        assert await cache.take("k") is None

    @pytest.mark.asyncio
    async def test_put_replaces_value_and_ttl(self, clock):
        """Should overwrite an existing value and restart its TTL."""
        cache = InMemoryOfferCache(clock=clock.monotonic)
        await cache.put("k", "old", 2)
        clock.advance(1)
        await cache.put("k", "new", 2)
        clock.advance(1.5)

        assert await cache.take("k") == "new"

    @pytest.mark.asyncio
    async def test_concurrent_takes_yield_one_winner(self):
        """Should let exactly one of many concurrent takes see the value."""
        cache = InMemoryOfferCache()
        await cache.put("k", "v", 60)

        results = await asyncio.gather(*[cache.take("k") for _ in range(20)])

        assert results.count("v") == 1

    @pytest.mark.asyncio
    async def test_len_counts_live_entries(self, clock):
        """Should not count expired entries."""
        cache = InMemoryOfferCache(clock=clock.monotonic)
        await cache.put("a", "1", 1)
        await cache.put("b", "2", 10)
        clock.advance(5)

        assert len(cache) == 1


class TestOfferCache:
    """Tests for the typed OfferCache wrapper."""

    @pytest.mark.asyncio
    async def test_put_then_take(self):
        """Should restore an equal offer keyed by its id."""
        cache = OfferCache(InMemoryOfferCache())
        offer = _offer()
        await cache.put(offer, 60)

        assert await cache.take(offer.offer_id) == offer

    @pytest.mark.asyncio
    async def test_missing_offer(self):
        """Should raise FtexNotFoundError when absent."""
        cache = OfferCache(InMemoryOfferCache())
        with pytest.raises(FtexNotFoundError):
            await cache.take(b"\x02" * 20)

    @pytest.mark.asyncio
    async def test_malformed_record(self):
        """Should raise FtexInternalError on a corrupted record."""
        backend = InMemoryOfferCache()
        cache = OfferCache(backend)
        offer_id = b"\x03" * 20
        await backend.put(f"{OfferCache.PREFIX}:{offer_id.hex()}", '{"principal": "nope"}', 60)

        with pytest.raises(FtexInternalError):
            await cache.take(offer_id)

    def test_factory_selects_backend(self):
        """Should use Redis only when a URL is configured."""
        assert isinstance(create_offer_cache("").backend, InMemoryOfferCache)
        assert isinstance(create_offer_cache("redis://localhost:6379/0").backend, RedisOfferCache)


class TestRedisOfferCache:
    """Tests for RedisOfferCache against a mocked client."""

    def _backend(self, client) -> RedisOfferCache:
        backend = RedisOfferCache("redis://localhost:6379/0")
        backend._client = client
        return backend

    @pytest.mark.asyncio
    async def test_put_uses_millisecond_ttl(self):
        """Should SET with a PX expiry."""
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        backend = self._backend(client)

        await backend.put("k", "v", 2.5)

        client.set.assert_awaited_once_with("k", "v", px=2500)

    @pytest.mark.asyncio
    async def test_take_uses_getdel(self):
        """Should read and delete atomically."""
        client = MagicMock()
        client.getdel = AsyncMock(return_value="v")
        backend = self._backend(client)

        assert await backend.take("k") == "v"
        client.getdel.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_transport_errors_are_transient(self):
        """Should map Redis failures to FtexCacheUnavailableError."""
        client = MagicMock()
        client.set = AsyncMock(side_effect=RedisConnectionError("down"))
        client.getdel = AsyncMock(side_effect=RedisConnectionError("down"))
        backend = self._backend(client)

        with pytest.raises(FtexCacheUnavailableError):
            await backend.put("k", "v", 1)
        with pytest.raises(FtexCacheUnavailableError):
            await backend.take("k")

    @pytest.mark.asyncio
    async def test_ping_failure_reports_unhealthy(self):
        """Should report False rather than raise when Redis is unreachable."""
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        backend = self._backend(client)

        assert await backend.ping() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        """Should close and drop the client."""
        client = MagicMock()
        client.aclose = AsyncMock()
        backend = self._backend(client)

        await backend.close()

        client.aclose.assert_awaited_once()
        assert backend._client is None
