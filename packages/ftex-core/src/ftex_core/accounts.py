"""Account operations: opening accounts, deposits, balances and transaction lookup."""
from __future__ import annotations

import logging
from typing import Any, List
from uuid import UUID

from ftex_ledger.errors import AccountExistsError, AccountMissingError, InsufficientFundsError, LedgerError
from ftex_ledger.models import Account, Currency, CurrencyKind, JournalEntry, TransferReceipt
from ftex_ledger.store import LedgerStore

from .currency import currency_for, validate_amount, validate_crypto_ticker, validate_fiat_code
from .exceptions import (
    FtexAlreadyExistsError,
    FtexInvalidRequestError,
    FtexNotFoundError,
    FtexPreconditionFailedError,
    FtexTransientUpstreamError,
)

logger = logging.getLogger(__name__)


class AccountService:
    """Thin validation and error-mapping layer over the ledger store."""

    def __init__(self, ledger: LedgerStore):
        self._ledger = ledger

    async def open_fiat_account(self, principal: UUID, currency: str) -> Account:
        return await self._open(principal, validate_fiat_code(currency))

    async def open_crypto_account(self, principal: UUID, ticker: str) -> Account:
        return await self._open(principal, validate_crypto_ticker(ticker))

    async def _open(self, principal: UUID, currency: Currency) -> Account:
        try:
            return await self._ledger.create_account(principal, currency)
        except AccountExistsError:
            raise FtexAlreadyExistsError(f"{currency.code} account already exists") from None
        except LedgerError as e:
            logger.error(f"Opening account failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e

    async def deposit_fiat(self, principal: UUID, currency: str, amount: Any) -> TransferReceipt:
        """Credit an existing fiat account from outside the system."""
        fiat = validate_fiat_code(currency)
        value = validate_amount(amount, CurrencyKind.FIAT)
        try:
            receipt = await self._ledger.external_transfer(principal, fiat, value)
        except AccountMissingError:
            raise FtexNotFoundError("account", fiat.code, message=f"{fiat.code} account not found") from None
        except InsufficientFundsError as e:
            raise FtexPreconditionFailedError("insufficient funds") from e
        except LedgerError as e:
            logger.error(f"Deposit failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e
        logger.info(f"Deposited {value} {fiat.code} in tx {receipt.tx_id}")
        return receipt

    async def balance_one(self, principal: UUID, kind: CurrencyKind, code: str) -> Account:
        currency = currency_for(kind, code)
        try:
            return await self._ledger.balance(principal, currency)
        except AccountMissingError:
            raise FtexNotFoundError("account", currency.code, message=f"{currency.code} account not found") from None
        except LedgerError as e:
            logger.error(f"Balance lookup failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e

    async def transaction_details(self, principal: UUID, tx_id: Any) -> List[JournalEntry]:
        """Journal rows of one transaction across fiat and crypto accounts."""
        try:
            parsed = tx_id if isinstance(tx_id, UUID) else UUID(str(tx_id))
        except ValueError:
            raise FtexInvalidRequestError("invalid transaction id", field="txId") from None
        try:
            entries = await self._ledger.tx_by_id(principal, parsed)
        except LedgerError as e:
            logger.error(f"Transaction lookup failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e
        if not entries:
            raise FtexNotFoundError("transaction", str(parsed), message="transaction id not found")
        return entries
