"""Offer cache with Redis/Upstash support and in-memory fallback.

Offers are single use: ``take`` is an atomic read-and-delete, so of any
number of concurrent takes on one key at most one sees the value. TTLs are
enforced by the backing store; nothing here runs a reaper.
"""
from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from .exceptions import FtexCacheUnavailableError, FtexInternalError, FtexNotFoundError
from .models import Offer

logger = logging.getLogger(__name__)


class OfferCacheBackend(ABC):
    """Abstract key-value transport for offers."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl: float) -> None:
        """Store a value for ``ttl`` seconds, replacing any previous value and TTL."""

    @abstractmethod
    async def take(self, key: str) -> Optional[str]:
        """Atomically read and delete a value. None if absent or expired."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryOfferCache(OfferCacheBackend):
    """
    In-memory backend for development and tests.

    ``take`` has no suspension point between lookup and removal, which makes
    it atomic with respect to other tasks on the same event loop.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._store: Dict[str, Tuple[str, float]] = {}  # key -> (value, expires_at)
        self._clock = clock or time.monotonic

    async def put(self, key: str, value: str, ttl: float) -> None:
        self._store[key] = (value, self._clock() + ttl)

    async def take(self, key: str) -> Optional[str]:
        entry = self._store.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            return None
        return value

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._store.values() if expires_at >= now)


class RedisOfferCache(OfferCacheBackend):
    """Redis/Upstash backend using SET PX and GETDEL."""

    def __init__(self, url: str):
        self._url = url
        self._client: Optional[redis.Redis] = None

    def _get_client(self) -> redis.Redis:
        """Lazy initialization of Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)
        return self._client

    async def put(self, key: str, value: str, ttl: float) -> None:
        try:
            await self._get_client().set(key, value, px=max(1, int(ttl * 1000)))
        except RedisError as e:
            logger.error(f"Redis put error: {e}")
            raise FtexCacheUnavailableError(details={"operation": "put"}) from e

    async def take(self, key: str) -> Optional[str]:
        try:
            return await self._get_client().getdel(key)
        except RedisError as e:
            logger.error(f"Redis take error: {e}")
            raise FtexCacheUnavailableError(details={"operation": "take"}) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._get_client().ping())
        except RedisError as e:
            logger.warning(f"Redis ping error: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


class OfferCache:
    """Typed offer storage keyed by the unsealed offer id."""

    PREFIX = "ftex:offer"

    def __init__(self, backend: OfferCacheBackend):
        self._backend = backend

    @property
    def backend(self) -> OfferCacheBackend:
        return self._backend

    def _key(self, offer_id: bytes) -> str:
        return f"{self.PREFIX}:{offer_id.hex()}"

    async def put(self, offer: Offer, ttl: float) -> None:
        await self._backend.put(self._key(offer.offer_id), json.dumps(offer.to_dict()), ttl)

    async def take(self, offer_id: bytes) -> Offer:
        """
        Remove and return an offer.

        Raises:
            FtexNotFoundError: absent, expired or already taken.
            FtexCacheUnavailableError: transport failure.
        """
        raw = await self._backend.take(self._key(offer_id))
        if raw is None:
            raise FtexNotFoundError("offer", offer_id.hex()[:8])
        try:
            return Offer.from_dict(offer_id, json.loads(raw))
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"Discarding malformed cached offer: {type(e).__name__}: {e}")
            raise FtexInternalError("malformed offer record in cache") from e

    async def ping(self) -> bool:
        return await self._backend.ping()

    async def close(self) -> None:
        await self._backend.close()


def create_offer_cache(redis_url: Optional[str] = None) -> OfferCache:
    """Create an offer cache with the appropriate backend."""
    if redis_url:
        logger.info("Using Redis offer cache backend")
        return OfferCache(RedisOfferCache(redis_url))
    logger.info("Using in-memory offer cache backend")
    return OfferCache(InMemoryOfferCache())
