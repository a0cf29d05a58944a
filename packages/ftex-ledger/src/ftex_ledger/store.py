"""Ledger store contract and the in-memory implementation.

The store owns double-entry atomicity: an internal transfer either commits
both journal rows and both balance updates, or nothing at all.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID

from .errors import (
    AccountExistsError,
    AccountMissingError,
    InsufficientFundsError,
    InvalidTransferError,
    account_label,
)
from .models import Account, Currency, CurrencyKind, JournalEntry, TransferReceipt

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerStore(ABC):
    """Abstract transactional ledger."""

    @abstractmethod
    async def create_account(self, principal: UUID, currency: Currency) -> Account:
        """Open an account. Raises AccountExistsError if already open."""

    @abstractmethod
    async def balance(self, principal: UUID, currency: Currency) -> Account:
        """Fetch one account. Raises AccountMissingError if absent."""

    @abstractmethod
    async def balance_page(
        self,
        principal: UUID,
        kind: CurrencyKind,
        start_code: Optional[str],
        limit: int,
    ) -> List[Account]:
        """Accounts of one kind ordered by code, starting at ``start_code`` inclusive."""

    @abstractmethod
    async def external_transfer(
        self,
        principal: UUID,
        currency: Currency,
        amount: Decimal,
    ) -> TransferReceipt:
        """Single-entry movement between the outside world and one account."""

    @abstractmethod
    async def internal_transfer(
        self,
        principal: UUID,
        source: Currency,
        source_amount: Decimal,
        destination: Currency,
        destination_amount: Decimal,
    ) -> Tuple[TransferReceipt, TransferReceipt]:
        """Debit ``source`` and credit ``destination`` atomically under one tx id."""

    @abstractmethod
    async def tx_by_id(self, principal: UUID, tx_id: UUID) -> List[JournalEntry]:
        """All journal rows of ``principal`` sharing ``tx_id``."""

    @abstractmethod
    async def tx_by_period(
        self,
        principal: UUID,
        currency: Currency,
        start: datetime,
        end: datetime,
        offset: int,
        limit: int,
    ) -> List[JournalEntry]:
        """Journal rows in ``[start, end)`` ordered by transaction time."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


def _check_transfer(
    source: Currency,
    source_amount: Decimal,
    destination: Currency,
    destination_amount: Decimal,
) -> None:
    if source == destination:
        raise InvalidTransferError("source and destination accounts must differ")
    if source_amount <= 0 or destination_amount <= 0:
        raise InvalidTransferError(
            "transfer amounts must be positive",
            details={"source_amount": str(source_amount), "destination_amount": str(destination_amount)},
        )


class InMemoryLedgerStore(LedgerStore):
    """
    In-memory ledger for development and tests.

    Mutations for a principal are serialized by a per-principal lock, and all
    checks run before the first write so a rejected transfer leaves no trace.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._accounts: Dict[Tuple[UUID, Currency], Account] = {}
        self._journal: List[JournalEntry] = []
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._clock = clock or _utcnow

    def _lock(self, principal: UUID) -> asyncio.Lock:
        lock = self._locks.get(principal)
        if lock is None:
            lock = self._locks[principal] = asyncio.Lock()
        return lock

    def _get(self, principal: UUID, currency: Currency) -> Account:
        account = self._accounts.get((principal, currency))
        if account is None:
            raise AccountMissingError(account_label(principal, currency))
        return account

    def _apply(self, account: Account, tx_id: UUID, amount: Decimal, at: datetime) -> TransferReceipt:
        account.balance += amount
        account.last_tx = amount
        account.last_tx_ts = at
        self._journal.append(
            JournalEntry(
                tx_id=tx_id,
                principal=account.principal,
                currency=account.currency,
                amount=amount,
                transacted_at=at,
            )
        )
        return TransferReceipt(
            tx_id=tx_id,
            principal=account.principal,
            currency=account.currency,
            balance=account.balance,
            last_tx=amount,
            tx_timestamp=at,
        )

    async def create_account(self, principal: UUID, currency: Currency) -> Account:
        async with self._lock(principal):
            key = (principal, currency)
            if key in self._accounts:
                raise AccountExistsError(account_label(principal, currency))
            account = Account(principal=principal, currency=currency, created_at=self._clock())
            self._accounts[key] = account
            logger.debug(f"Opened account {account_label(principal, currency)}")
            return replace(account)

    async def balance(self, principal: UUID, currency: Currency) -> Account:
        return replace(self._get(principal, currency))

    async def balance_page(
        self,
        principal: UUID,
        kind: CurrencyKind,
        start_code: Optional[str],
        limit: int,
    ) -> List[Account]:
        accounts = sorted(
            (
                account
                for (owner, currency), account in self._accounts.items()
                if owner == principal
                and currency.kind == kind
                and (start_code is None or currency.code >= start_code)
            ),
            key=lambda account: account.currency.code,
        )
        return [replace(account) for account in accounts[:limit]]

    async def external_transfer(
        self,
        principal: UUID,
        currency: Currency,
        amount: Decimal,
    ) -> TransferReceipt:
        if amount == 0:
            raise InvalidTransferError("external transfer amount must be non-zero")
        async with self._lock(principal):
            account = self._get(principal, currency)
            if account.balance + amount < 0:
                raise InsufficientFundsError(account_label(principal, currency), -amount, account.balance)
            return self._apply(account, uuid.uuid4(), amount, self._clock())

    async def internal_transfer(
        self,
        principal: UUID,
        source: Currency,
        source_amount: Decimal,
        destination: Currency,
        destination_amount: Decimal,
    ) -> Tuple[TransferReceipt, TransferReceipt]:
        _check_transfer(source, source_amount, destination, destination_amount)
        async with self._lock(principal):
            source_account = self._get(principal, source)
            destination_account = self._get(principal, destination)
            if source_account.balance < source_amount:
                raise InsufficientFundsError(
                    account_label(principal, source), source_amount, source_account.balance
                )

            tx_id = uuid.uuid4()
            at = self._clock()
            debit = self._apply(source_account, tx_id, -source_amount, at)
            credit = self._apply(destination_account, tx_id, destination_amount, at)
            return debit, credit

    async def tx_by_id(self, principal: UUID, tx_id: UUID) -> List[JournalEntry]:
        return [e for e in self._journal if e.tx_id == tx_id and e.principal == principal]

    async def tx_by_period(
        self,
        principal: UUID,
        currency: Currency,
        start: datetime,
        end: datetime,
        offset: int,
        limit: int,
    ) -> List[JournalEntry]:
        rows = [
            e
            for e in self._journal
            if e.principal == principal and e.currency == currency and start <= e.transacted_at < end
        ]
        # Journal is append-only so insertion order is a stable tiebreak
        rows.sort(key=lambda e: e.transacted_at)
        return rows[offset:offset + limit]
