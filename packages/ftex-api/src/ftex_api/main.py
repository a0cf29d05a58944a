"""API composition root."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from ftex_core import FtexSettings, load_settings
from ftex_core.accounts import AccountService
from ftex_core.cache import OfferCache, create_offer_cache
from ftex_core.executor import ExchangeExecutor
from ftex_core.offers import OfferService
from ftex_core.pagination import PaginationService
from ftex_core.quotes import HttpRateOracle, RateOracle
from ftex_core.sealing import TokenSealer
from ftex_ledger import LedgerStore, create_ledger_store
from ftex_ledger.db_engine import PostgresLedgerStore

from .authz import TokenValidator
from .middleware import LoggingConfig, StructuredLoggingMiddleware, register_exception_handlers, setup_logging
from .routers import crypto as crypto_router
from .routers import fiat as fiat_router
from .routers import transactions as transactions_router

logger = logging.getLogger("ftex.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting FTeX API...")

    ledger: LedgerStore = app.state.ledger
    if isinstance(ledger, PostgresLedgerStore):
        await ledger.init_schema()

    yield

    logger.info("Shutting down FTeX API...")
    await app.state.oracle.close()
    await app.state.offer_cache.close()
    await ledger.close()


def create_app(
    settings: FtexSettings | None = None,
    *,
    ledger: Optional[LedgerStore] = None,
    offer_cache: Optional[OfferCache] = None,
    oracle: Optional[RateOracle] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(
        json_format=settings.environment != "dev",
        level=settings.log_level,
    )

    base_path = settings.server.base_path
    app = FastAPI(
        title="FTeX Brokerage API",
        version="0.1.0",
        openapi_url=f"{base_path}/openapi.json",
        docs_url=settings.server.playground_path,
        lifespan=lifespan,
    )

    ledger = ledger or create_ledger_store(settings.database_url)
    offer_cache = offer_cache or create_offer_cache(settings.redis_url)
    oracle = oracle or HttpRateOracle(settings.quotes)
    sealer = TokenSealer(settings.sealing.key)

    accounts = AccountService(ledger)
    offers = OfferService(
        oracle=oracle,
        cache=offer_cache,
        sealer=sealer,
        ttl_seconds=settings.offers.ttl_seconds,
        clock=clock,
    )
    executor = ExchangeExecutor(offers, ledger)
    pagination = PaginationService(
        ledger,
        sealer,
        default_page_size=settings.pagination.default_page_size,
        max_page_size=settings.pagination.max_page_size,
    )

    app.state.settings = settings
    app.state.ledger = ledger
    app.state.offer_cache = offer_cache
    app.state.oracle = oracle
    app.state.token_validator = TokenValidator(settings.authorization)

    register_exception_handlers(app)

    # Structured logging is added last so it runs outermost
    logging_config = LoggingConfig(
        exclude_paths=["/health", settings.server.playground_path, f"{base_path}/openapi.json"],
    )
    auth_header = settings.authorization.header_key.lower()
    if auth_header not in logging_config.sensitive_headers:
        logging_config.sensitive_headers.append(auth_header)
    app.add_middleware(StructuredLoggingMiddleware, config=logging_config)

    app.dependency_overrides[fiat_router.get_deps] = lambda: fiat_router.FiatDependencies(
        accounts=accounts,
        offers=offers,
        executor=executor,
        pagination=pagination,
    )
    app.include_router(fiat_router.router, prefix=f"{base_path}/fiat")

    app.dependency_overrides[crypto_router.get_deps] = lambda: crypto_router.CryptoDependencies(
        accounts=accounts,
        offers=offers,
        executor=executor,
        pagination=pagination,
    )
    app.include_router(crypto_router.router, prefix=f"{base_path}/crypto")

    app.dependency_overrides[transactions_router.get_deps] = lambda: transactions_router.TransactionDependencies(
        accounts=accounts,
    )
    app.include_router(transactions_router.router, prefix=f"{base_path}/transaction")

    @app.get("/health", tags=["health"])
    async def health_check():
        """Liveness of the ledger and offer cache."""
        components = {
            "ledger": "healthy" if await ledger.ping() else "unhealthy",
            "offer_cache": "healthy" if await offer_cache.ping() else "unhealthy",
        }
        healthy = all(state == "healthy" for state in components.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "service": "ftex-api",
                "components": components,
            },
        )

    return app
