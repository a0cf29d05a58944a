"""Transaction lookup across fiat and crypto accounts."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ftex_core.accounts import AccountService

from ..authz import Principal, require_principal
from ..schemas import JournalEntryResponse, TransactionDetailsResponse

router = APIRouter(tags=["transactions"])


class TransactionDependencies:
    """Dependencies for transaction routes."""
    def __init__(self, accounts: AccountService):
        self.accounts = accounts


def get_deps() -> TransactionDependencies:
    """Dependency injection placeholder."""
    raise NotImplementedError("Must be overridden")


@router.get("/{tx_id}", response_model=TransactionDetailsResponse)
async def transaction_details(
    tx_id: str,
    principal: Principal = Depends(require_principal),
    deps: TransactionDependencies = Depends(get_deps),
):
    """Both journal legs of a transaction."""
    entries = await deps.accounts.transaction_details(principal.client_id, tx_id)
    return TransactionDetailsResponse(
        transactions=[JournalEntryResponse.from_entry(entry) for entry in entries],
    )
