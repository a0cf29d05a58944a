"""
Tests for ftex_ledger.store module.

Tests cover:
- Account lifecycle
- Internal transfers and the double-entry pair
- External transfers
- Balance pagination ordering
- Journal queries by id and period
- Balance equals the signed journal sum
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ftex_ledger import (
    AccountExistsError,
    AccountMissingError,
    Currency,
    CurrencyKind,
    InMemoryLedgerStore,
    InsufficientFundsError,
    InvalidTransferError,
)

USD = Currency(CurrencyKind.FIAT, "USD")
CAD = Currency(CurrencyKind.FIAT, "CAD")
EUR = Currency(CurrencyKind.FIAT, "EUR")
BTC = Currency(CurrencyKind.CRYPTO, "BTC")


@pytest.fixture
def principal():
    return uuid.uuid4()


@pytest.fixture
def store():
    return InMemoryLedgerStore()


async def _funded(store, principal, amount="1000.00"):
    await store.create_account(principal, USD)
    await store.create_account(principal, CAD)
    await store.external_transfer(principal, USD, Decimal(amount))


class TestAccounts:
    """Tests for account creation and lookup."""

    @pytest.mark.asyncio
    async def test_create_account(self, store, principal):
        """Should open an account with a zero balance."""
        account = await store.create_account(principal, USD)

        assert account.principal == principal
        assert account.currency == USD
        assert account.balance == Decimal("0")
        assert account.last_tx_ts is None

    @pytest.mark.asyncio
    async def test_duplicate_account_rejected(self, store, principal):
        """Should refuse to open the same account twice."""
        await store.create_account(principal, USD)

        with pytest.raises(AccountExistsError):
            await store.create_account(principal, USD)

    @pytest.mark.asyncio
    async def test_same_code_different_kind_is_distinct(self, store, principal):
        """Should key accounts by kind as well as code."""
        await store.create_account(principal, Currency(CurrencyKind.FIAT, "ABC"))
        await store.create_account(principal, Currency(CurrencyKind.CRYPTO, "ABC"))

    @pytest.mark.asyncio
    async def test_missing_account(self, store, principal):
        """Should raise AccountMissingError for unknown accounts."""
        with pytest.raises(AccountMissingError):
            await store.balance(principal, USD)

    @pytest.mark.asyncio
    async def test_accounts_are_per_principal(self, store, principal):
        """Should not expose another principal's account."""
        await store.create_account(principal, USD)

        with pytest.raises(AccountMissingError):
            await store.balance(uuid.uuid4(), USD)


class TestInternalTransfer:
    """Tests for atomic double-entry transfers."""

    @pytest.mark.asyncio
    async def test_transfer_updates_both_balances(self, store, principal):
        """Should debit the source and credit the destination."""
        await _funded(store, principal)

        debit, credit = await store.internal_transfer(
            principal, USD, Decimal("100.00"), CAD, Decimal("135.00")
        )

        assert debit.balance == Decimal("900.00")
        assert credit.balance == Decimal("135.00")
        assert debit.last_tx == Decimal("-100.00")
        assert credit.last_tx == Decimal("135.00")
        assert (await store.balance(principal, USD)).balance == Decimal("900.00")
        assert (await store.balance(principal, CAD)).balance == Decimal("135.00")

    @pytest.mark.asyncio
    async def test_transfer_writes_two_entries_sharing_tx_id(self, store, principal):
        """Should create exactly one negative and one positive row under one tx id."""
        await _funded(store, principal)

        debit, credit = await store.internal_transfer(
            principal, USD, Decimal("100.00"), CAD, Decimal("135.00")
        )
        entries = await store.tx_by_id(principal, debit.tx_id)

        assert debit.tx_id == credit.tx_id
        assert len(entries) == 2
        by_currency = {e.currency: e.amount for e in entries}
        assert by_currency == {USD: Decimal("-100.00"), CAD: Decimal("135.00")}

    @pytest.mark.asyncio
    async def test_insufficient_funds_leaves_no_trace(self, store, principal):
        """Should reject an overdraft without touching balances or the journal."""
        await _funded(store, principal, amount="50.00")

        with pytest.raises(InsufficientFundsError):
            await store.internal_transfer(principal, USD, Decimal("100.00"), CAD, Decimal("135.00"))

        assert (await store.balance(principal, USD)).balance == Decimal("50.00")
        assert (await store.balance(principal, CAD)).balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_missing_destination_leaves_no_trace(self, store, principal):
        """Should reject a transfer to an unopened account without debiting the source."""
        await store.create_account(principal, USD)
        await store.external_transfer(principal, USD, Decimal("100.00"))

        with pytest.raises(AccountMissingError):
            await store.internal_transfer(principal, USD, Decimal("10.00"), EUR, Decimal("9.20"))

        assert (await store.balance(principal, USD)).balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_same_account_rejected(self, store, principal):
        """Should refuse a transfer from an account to itself."""
        await _funded(store, principal)

        with pytest.raises(InvalidTransferError):
            await store.internal_transfer(principal, USD, Decimal("1"), USD, Decimal("1"))

    @pytest.mark.asyncio
    async def test_concurrent_transfers_never_overdraw(self, store, principal):
        """Should serialize concurrent debits so only affordable ones succeed."""
        await _funded(store, principal, amount="100.00")

        results = await asyncio.gather(
            *[
                store.internal_transfer(principal, USD, Decimal("30.00"), CAD, Decimal("40.50"))
                for _ in range(5)
            ],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, InsufficientFundsError)]
        assert len(successes) == 3
        assert len(failures) == 2
        assert (await store.balance(principal, USD)).balance == Decimal("10.00")


class TestExternalTransfer:
    """Tests for single-entry deposits and withdrawals."""

    @pytest.mark.asyncio
    async def test_deposit_credits_account(self, store, principal):
        """Should credit the account and journal a single row."""
        await store.create_account(principal, USD)

        receipt = await store.external_transfer(principal, USD, Decimal("250.10"))

        assert receipt.balance == Decimal("250.10")
        assert len(await store.tx_by_id(principal, receipt.tx_id)) == 1

    @pytest.mark.asyncio
    async def test_withdrawal_cannot_overdraw(self, store, principal):
        """Should reject a negative transfer larger than the balance."""
        await store.create_account(principal, USD)

        with pytest.raises(InsufficientFundsError):
            await store.external_transfer(principal, USD, Decimal("-1"))

    @pytest.mark.asyncio
    async def test_zero_rejected(self, store, principal):
        """Should refuse a zero-amount transfer."""
        await store.create_account(principal, USD)

        with pytest.raises(InvalidTransferError):
            await store.external_transfer(principal, USD, Decimal("0"))


class TestQueries:
    """Tests for balance pages and journal period queries."""

    @pytest.mark.asyncio
    async def test_balance_page_orders_by_code(self, store, principal):
        """Should return accounts of one kind in code order from the start code."""
        for code in ["USD", "AED", "EUR", "CAD"]:
            await store.create_account(principal, Currency(CurrencyKind.FIAT, code))
        await store.create_account(principal, BTC)

        page = await store.balance_page(principal, CurrencyKind.FIAT, None, 10)
        assert [a.currency.code for a in page] == ["AED", "CAD", "EUR", "USD"]

        page = await store.balance_page(principal, CurrencyKind.FIAT, "CAD", 2)
        assert [a.currency.code for a in page] == ["CAD", "EUR"]

    @pytest.mark.asyncio
    async def test_tx_by_period_window_and_offset(self, principal):
        """Should return rows inside [start, end) honoring offset and limit."""
        now = [datetime(2024, 3, 31, 23, 0, tzinfo=timezone.utc)]
        store = InMemoryLedgerStore(clock=lambda: now[0])
        await store.create_account(principal, USD)

        for _ in range(4):
            await store.external_transfer(principal, USD, Decimal("1"))
            now[0] += timedelta(minutes=30)

        start = datetime(2024, 4, 1, tzinfo=timezone.utc)
        end = datetime(2024, 5, 1, tzinfo=timezone.utc)
        rows = await store.tx_by_period(principal, USD, start, end, 0, 10)
        assert len(rows) == 2
        assert all(start <= r.transacted_at < end for r in rows)

        rows = await store.tx_by_period(principal, USD, start, end, 1, 10)
        assert len(rows) == 1


@settings(max_examples=50, deadline=None)
@given(
    st.lists(
        st.tuples(
            st.sampled_from(["deposit", "exchange"]),
            st.decimals(min_value=Decimal("0.01"), max_value=Decimal("500"), places=2),
        ),
        max_size=25,
    )
)
def test_balance_equals_journal_sum(operations):
    """Should keep every balance equal to the signed sum of its journal rows."""

    async def scenario():
        store = InMemoryLedgerStore()
        principal = uuid.uuid4()
        await store.create_account(principal, USD)
        await store.create_account(principal, CAD)
        for operation, amount in operations:
            try:
                if operation == "deposit":
                    await store.external_transfer(principal, USD, amount)
                else:
                    await store.internal_transfer(principal, USD, amount, CAD, amount * 2)
            except InsufficientFundsError:
                pass

        start = datetime(1970, 1, 1, tzinfo=timezone.utc)
        end = datetime(9999, 1, 1, tzinfo=timezone.utc)
        for currency in (USD, CAD):
            rows = await store.tx_by_period(principal, currency, start, end, 0, 10_000)
            account = await store.balance(principal, currency)
            assert account.balance == sum((r.amount for r in rows), Decimal("0"))
            assert account.balance >= 0

    asyncio.run(scenario())
