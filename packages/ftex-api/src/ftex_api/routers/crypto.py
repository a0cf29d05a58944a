"""Crypto account, exchange and history routes."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ftex_core.accounts import AccountService
from ftex_core.currency import validate_crypto_ticker
from ftex_core.executor import ExchangeExecutor
from ftex_core.offers import OfferService
from ftex_core.pagination import PaginationService
from ftex_ledger.models import CurrencyKind

from ..authz import Principal, require_principal
from ..schemas import (
    AccountResponse,
    BalancePageResponse,
    CryptoOfferRequest,
    ExchangeResponse,
    JournalEntryResponse,
    OfferResponse,
    OpenCryptoAccountRequest,
    OpenCryptoAccountResponse,
    ReceiptResponse,
    TransactionPageResponse,
    TransferRequest,
)

router = APIRouter(tags=["crypto"])


class CryptoDependencies:
    """Dependencies for crypto routes."""
    def __init__(
        self,
        accounts: AccountService,
        offers: OfferService,
        executor: ExchangeExecutor,
        pagination: PaginationService,
    ):
        self.accounts = accounts
        self.offers = offers
        self.executor = executor
        self.pagination = pagination


def get_deps() -> CryptoDependencies:
    """Dependency injection placeholder."""
    raise NotImplementedError("Must be overridden")


@router.post("/open", response_model=OpenCryptoAccountResponse, status_code=status.HTTP_201_CREATED)
async def open_crypto_account(
    request: OpenCryptoAccountRequest,
    principal: Principal = Depends(require_principal),
    deps: CryptoDependencies = Depends(get_deps),
):
    """Open a crypto account for a ticker."""
    account = await deps.accounts.open_crypto_account(principal.client_id, request.ticker)
    return OpenCryptoAccountResponse(client_id=str(account.principal), ticker=account.currency.code)


@router.post("/offer", response_model=OfferResponse)
async def offer_crypto_exchange(
    request: CryptoOfferRequest,
    principal: Principal = Depends(require_principal),
    deps: CryptoDependencies = Depends(get_deps),
):
    """Lock a crypto purchase or sale price for a short period."""
    sealed, offer = await deps.offers.issue_crypto_offer(
        principal.client_id,
        request.source_currency,
        request.destination_currency,
        request.source_amount,
        request.is_purchase,
    )
    return OfferResponse.from_offer(sealed, offer, crypto=True)


@router.post("/exchange", response_model=ExchangeResponse)
async def exchange_crypto(
    request: TransferRequest,
    principal: Principal = Depends(require_principal),
    deps: CryptoDependencies = Depends(get_deps),
):
    """Execute a crypto purchase or sale offer."""
    source, destination = await deps.executor.exchange_crypto(principal.client_id, request.offer_id)
    return ExchangeResponse(
        source_receipt=ReceiptResponse.from_receipt(source),
        destination_receipt=ReceiptResponse.from_receipt(destination),
    )


@router.get("/info/balance/{ticker}", response_model=AccountResponse)
async def crypto_balance(
    ticker: str,
    principal: Principal = Depends(require_principal),
    deps: CryptoDependencies = Depends(get_deps),
):
    """Balance of a single crypto account."""
    account = await deps.accounts.balance_one(principal.client_id, CurrencyKind.CRYPTO, ticker)
    return AccountResponse.from_account(account)


@router.get("/info/balance", response_model=BalancePageResponse)
async def crypto_balances(
    page_cursor: str = Query(default="", alias="pageCursor"),
    page_size: Optional[int] = Query(default=None, alias="pageSize"),
    principal: Principal = Depends(require_principal),
    deps: CryptoDependencies = Depends(get_deps),
):
    """Paginated balances of all crypto accounts."""
    page = await deps.pagination.balance_page(principal.client_id, CurrencyKind.CRYPTO, page_cursor, page_size)
    return BalancePageResponse(
        account_balances=[AccountResponse.from_account(account) for account in page.rows],
        page_cursor=page.next_cursor,
    )


@router.get("/info/transaction/{ticker}", response_model=TransactionPageResponse)
async def crypto_transactions(
    ticker: str,
    month: Optional[str] = Query(default=None),
    year: Optional[str] = Query(default=None),
    timezone: Optional[str] = Query(default=None),
    page_cursor: str = Query(default="", alias="pageCursor"),
    page_size: Optional[int] = Query(default=None, alias="pageSize"),
    principal: Principal = Depends(require_principal),
    deps: CryptoDependencies = Depends(get_deps),
):
    """Paginated crypto transactions for one month."""
    page = await deps.pagination.transaction_page(
        principal.client_id,
        validate_crypto_ticker(ticker),
        page_cursor=page_cursor,
        page_size=page_size,
        month=month,
        year=year,
        timezone_name=timezone,
    )
    return TransactionPageResponse(
        transactions=[JournalEntryResponse.from_entry(entry) for entry in page.rows],
        page_cursor=page.next_cursor,
    )
