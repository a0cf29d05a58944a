"""Fiat account, deposit, exchange and history routes."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ftex_core.accounts import AccountService
from ftex_core.executor import ExchangeExecutor
from ftex_core.offers import OfferService
from ftex_core.pagination import PaginationService
from ftex_core.currency import validate_fiat_code
from ftex_ledger.models import CurrencyKind

from ..authz import Principal, require_principal
from ..schemas import (
    AccountResponse,
    BalancePageResponse,
    DepositRequest,
    ExchangeResponse,
    FiatOfferRequest,
    JournalEntryResponse,
    OfferResponse,
    OpenAccountResponse,
    OpenFiatAccountRequest,
    ReceiptResponse,
    TransactionPageResponse,
    TransferRequest,
)

router = APIRouter(tags=["fiat"])


class FiatDependencies:
    """Dependencies for fiat routes."""
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


def get_deps() -> FiatDependencies:
    """Dependency injection placeholder."""
    raise NotImplementedError("Must be overridden")


@router.post("/open", response_model=OpenAccountResponse, status_code=status.HTTP_201_CREATED)
async def open_fiat_account(
    request: OpenFiatAccountRequest,
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Open a fiat account in the given ISO-4217 currency."""
    account = await deps.accounts.open_fiat_account(principal.client_id, request.currency)
    return OpenAccountResponse(client_id=str(account.principal), currency=account.currency.code)


@router.post("/deposit", response_model=ReceiptResponse)
async def deposit_fiat(
    request: DepositRequest,
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Credit an existing fiat account with external funds."""
    receipt = await deps.accounts.deposit_fiat(principal.client_id, request.currency, request.amount)
    return ReceiptResponse.from_receipt(receipt)


@router.post("/exchange/offer", response_model=OfferResponse, response_model_exclude_none=True)
async def offer_fiat_exchange(
    request: FiatOfferRequest,
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Lock a fiat to fiat conversion rate for a short period."""
    sealed, offer = await deps.offers.issue_fiat_offer(
        principal.client_id,
        request.source_currency,
        request.destination_currency,
        request.source_amount,
    )
    return OfferResponse.from_offer(sealed, offer)


@router.post("/exchange/transfer", response_model=ExchangeResponse)
async def exchange_fiat(
    request: TransferRequest,
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Execute a fiat exchange offer."""
    source, destination = await deps.executor.exchange_fiat(principal.client_id, request.offer_id)
    return ExchangeResponse(
        source_receipt=ReceiptResponse.from_receipt(source),
        destination_receipt=ReceiptResponse.from_receipt(destination),
    )


@router.get("/info/balance/{currency}", response_model=AccountResponse)
async def fiat_balance(
    currency: str,
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Balance of a single fiat account."""
    account = await deps.accounts.balance_one(principal.client_id, CurrencyKind.FIAT, currency)
    return AccountResponse.from_account(account)


@router.get("/info/balance", response_model=BalancePageResponse)
async def fiat_balances(
    page_cursor: str = Query(default="", alias="pageCursor"),
    page_size: Optional[int] = Query(default=None, alias="pageSize"),
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Paginated balances of all fiat accounts."""
    page = await deps.pagination.balance_page(principal.client_id, CurrencyKind.FIAT, page_cursor, page_size)
    return BalancePageResponse(
        account_balances=[AccountResponse.from_account(account) for account in page.rows],
        page_cursor=page.next_cursor,
    )


@router.get("/info/transaction/{currency}", response_model=TransactionPageResponse)
async def fiat_transactions(
    currency: str,
    month: Optional[str] = Query(default=None),
    year: Optional[str] = Query(default=None),
    timezone: Optional[str] = Query(default=None),
    page_cursor: str = Query(default="", alias="pageCursor"),
    page_size: Optional[int] = Query(default=None, alias="pageSize"),
    principal: Principal = Depends(require_principal),
    deps: FiatDependencies = Depends(get_deps),
):
    """Paginated fiat transactions for one month."""
    page = await deps.pagination.transaction_page(
        principal.client_id,
        validate_fiat_code(currency),
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
