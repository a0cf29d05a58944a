"""Core domain services for the FTeX brokerage."""

from .config import FtexSettings, load_settings
from .accounts import AccountService
from .cache import InMemoryOfferCache, OfferCache, OfferCacheBackend, RedisOfferCache, create_offer_cache
from .executor import ExchangeExecutor
from .models import Offer
from .offers import OfferService
from .pagination import Page, PageCursor, PaginationService, month_period
from .quotes import CryptoQuote, FiatQuote, HttpRateOracle, RateOracle, StaticRateOracle
from .sealing import TokenSealer

__all__ = [
    "AccountService",
    "CryptoQuote",
    "ExchangeExecutor",
    "FiatQuote",
    "FtexSettings",
    "HttpRateOracle",
    "InMemoryOfferCache",
    "Offer",
    "OfferCache",
    "OfferCacheBackend",
    "OfferService",
    "Page",
    "PageCursor",
    "PaginationService",
    "RateOracle",
    "RedisOfferCache",
    "StaticRateOracle",
    "TokenSealer",
    "create_offer_cache",
    "load_settings",
    "month_period",
]
