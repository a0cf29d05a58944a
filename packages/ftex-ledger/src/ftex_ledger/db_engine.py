"""PostgreSQL-backed ledger store.

Accounts live in ``accounts`` keyed by ``(principal, kind, code)`` and every
balance change is appended to ``journal``. Transfers lock the touched
account rows ``FOR UPDATE`` in a deterministic order inside one transaction,
so concurrent transfers over the same accounts serialize without deadlock.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

import asyncpg

from .errors import (
    AccountExistsError,
    AccountMissingError,
    InsufficientFundsError,
    InvalidTransferError,
    LedgerUnavailableError,
    account_label,
)
from .models import Account, Currency, CurrencyKind, JournalEntry, TransferReceipt
from .store import LedgerStore, _check_transfer

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    principal   UUID           NOT NULL,
    kind        TEXT           NOT NULL,
    code        TEXT           NOT NULL,
    balance     NUMERIC(24, 8) NOT NULL DEFAULT 0 CHECK (balance >= 0),
    last_tx     NUMERIC(24, 8) NOT NULL DEFAULT 0,
    last_tx_ts  TIMESTAMPTZ,
    created_at  TIMESTAMPTZ    NOT NULL DEFAULT now(),
    PRIMARY KEY (principal, kind, code)
);

CREATE TABLE IF NOT EXISTS journal (
    id             BIGSERIAL      PRIMARY KEY,
    tx_id          UUID           NOT NULL,
    principal      UUID           NOT NULL,
    kind           TEXT           NOT NULL,
    code           TEXT           NOT NULL,
    amount         NUMERIC(24, 8) NOT NULL,
    transacted_at  TIMESTAMPTZ    NOT NULL DEFAULT now(),
    FOREIGN KEY (principal, kind, code) REFERENCES accounts (principal, kind, code)
);

CREATE INDEX IF NOT EXISTS journal_tx_id_idx ON journal (tx_id);
CREATE INDEX IF NOT EXISTS journal_period_idx ON journal (principal, kind, code, transacted_at);
"""

_ACCOUNT_COLUMNS = "principal, kind, code, balance, last_tx, last_tx_ts, created_at"


def _account_from_row(row) -> Account:
    currency = Currency(kind=CurrencyKind(row["kind"]), code=row["code"])
    return Account(
        principal=row["principal"],
        currency=currency,
        balance=currency.quantize(row["balance"]),
        last_tx=currency.quantize(row["last_tx"]),
        last_tx_ts=row["last_tx_ts"],
        created_at=row["created_at"],
    )


def _entry_from_row(row) -> JournalEntry:
    currency = Currency(kind=CurrencyKind(row["kind"]), code=row["code"])
    return JournalEntry(
        tx_id=row["tx_id"],
        principal=row["principal"],
        currency=currency,
        amount=currency.quantize(row["amount"]),
        transacted_at=row["transacted_at"],
    )


class PostgresLedgerStore(LedgerStore):
    """Production ledger store backed by PostgreSQL through asyncpg."""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10) -> None:
        if dsn.startswith("postgres://"):
            dsn = dsn.replace("postgres://", "postgresql://", 1)
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self._dsn, min_size=self._min_size, max_size=self._max_size
            )
        return self._pool

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a pooled connection, mapping driver failures to LedgerUnavailableError."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Ledger {operation} failed: {type(e).__name__}: {e}")
            raise LedgerUnavailableError(operation, e) from e

    async def init_schema(self) -> None:
        async with self._connection("init_schema") as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Ledger schema initialized")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def create_account(self, principal: UUID, currency: Currency) -> Account:
        async with self._connection("create_account") as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO accounts (principal, kind, code)
                    VALUES ($1, $2, $3)
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    principal,
                    currency.kind.value,
                    currency.code,
                )
            except asyncpg.UniqueViolationError:
                raise AccountExistsError(account_label(principal, currency)) from None
        return _account_from_row(row)

    async def balance(self, principal: UUID, currency: Currency) -> Account:
        async with self._connection("balance") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_ACCOUNT_COLUMNS} FROM accounts
                WHERE principal = $1 AND kind = $2 AND code = $3
                """,
                principal,
                currency.kind.value,
                currency.code,
            )
        if row is None:
            raise AccountMissingError(account_label(principal, currency))
        return _account_from_row(row)

    async def balance_page(
        self,
        principal: UUID,
        kind: CurrencyKind,
        start_code: Optional[str],
        limit: int,
    ) -> List[Account]:
        async with self._connection("balance_page") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_ACCOUNT_COLUMNS} FROM accounts
                WHERE principal = $1 AND kind = $2 AND code >= $3
                ORDER BY code
                LIMIT $4
                """,
                principal,
                kind.value,
                start_code or "",
                limit,
            )
        return [_account_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def _lock_account(self, conn, principal: UUID, currency: Currency):
        row = await conn.fetchrow(
            """
            SELECT balance FROM accounts
            WHERE principal = $1 AND kind = $2 AND code = $3
            FOR UPDATE
            """,
            principal,
            currency.kind.value,
            currency.code,
        )
        if row is None:
            raise AccountMissingError(account_label(principal, currency))
        return row["balance"]

    async def _post(
        self,
        conn,
        tx_id: UUID,
        principal: UUID,
        currency: Currency,
        amount: Decimal,
    ) -> TransferReceipt:
        row = await conn.fetchrow(
            """
            INSERT INTO journal (tx_id, principal, kind, code, amount)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING transacted_at
            """,
            tx_id,
            principal,
            currency.kind.value,
            currency.code,
            amount,
        )
        transacted_at = row["transacted_at"]
        balance_row = await conn.fetchrow(
            """
            UPDATE accounts
            SET balance = balance + $4, last_tx = $4, last_tx_ts = $5
            WHERE principal = $1 AND kind = $2 AND code = $3
            RETURNING balance
            """,
            principal,
            currency.kind.value,
            currency.code,
            amount,
            transacted_at,
        )
        return TransferReceipt(
            tx_id=tx_id,
            principal=principal,
            currency=currency,
            balance=currency.quantize(balance_row["balance"]),
            last_tx=currency.quantize(amount),
            tx_timestamp=transacted_at,
        )

    async def external_transfer(
        self,
        principal: UUID,
        currency: Currency,
        amount: Decimal,
    ) -> TransferReceipt:
        if amount == 0:
            raise InvalidTransferError("external transfer amount must be non-zero")
        async with self._connection("external_transfer") as conn:
            async with conn.transaction():
                available = await self._lock_account(conn, principal, currency)
                if available + amount < 0:
                    raise InsufficientFundsError(account_label(principal, currency), -amount, available)
                return await self._post(conn, uuid.uuid4(), principal, currency, amount)

    async def internal_transfer(
        self,
        principal: UUID,
        source: Currency,
        source_amount: Decimal,
        destination: Currency,
        destination_amount: Decimal,
    ) -> Tuple[TransferReceipt, TransferReceipt]:
        _check_transfer(source, source_amount, destination, destination_amount)
        async with self._connection("internal_transfer") as conn:
            async with conn.transaction():
                balances = {}
                for currency in sorted((source, destination), key=lambda c: (c.kind.value, c.code)):
                    balances[currency] = await self._lock_account(conn, principal, currency)

                if balances[source] < source_amount:
                    raise InsufficientFundsError(
                        account_label(principal, source), source_amount, balances[source]
                    )

                tx_id = uuid.uuid4()
                debit = await self._post(conn, tx_id, principal, source, -source_amount)
                credit = await self._post(conn, tx_id, principal, destination, destination_amount)
                return debit, credit

    # ------------------------------------------------------------------
    # Journal queries
    # ------------------------------------------------------------------

    async def tx_by_id(self, principal: UUID, tx_id: UUID) -> List[JournalEntry]:
        async with self._connection("tx_by_id") as conn:
            rows = await conn.fetch(
                """
                SELECT tx_id, principal, kind, code, amount, transacted_at
                FROM journal
                WHERE tx_id = $1 AND principal = $2
                ORDER BY id
                """,
                tx_id,
                principal,
            )
        return [_entry_from_row(row) for row in rows]

    async def tx_by_period(
        self,
        principal: UUID,
        currency: Currency,
        start: datetime,
        end: datetime,
        offset: int,
        limit: int,
    ) -> List[JournalEntry]:
        async with self._connection("tx_by_period") as conn:
            rows = await conn.fetch(
                """
                SELECT tx_id, principal, kind, code, amount, transacted_at
                FROM journal
                WHERE principal = $1 AND kind = $2 AND code = $3
                  AND transacted_at >= $4 AND transacted_at < $5
                ORDER BY transacted_at, id
                OFFSET $6 LIMIT $7
                """,
                principal,
                currency.kind.value,
                currency.code,
                start,
                end,
                offset,
                limit,
            )
        return [_entry_from_row(row) for row in rows]

    async def ping(self) -> bool:
        try:
            async with self._connection("ping") as conn:
                await conn.fetchval("SELECT 1")
        except LedgerUnavailableError:
            return False
        return True

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
