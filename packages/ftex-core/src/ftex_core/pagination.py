"""Cursor-based pagination for balances and transaction history.

Cursors are sealed records carrying the filter state of a scroll. Once a
cursor exists, filter parameters come only from it: the client cannot pivot
the currency, period or page size mid-scroll.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ftex_ledger.errors import LedgerError
from ftex_ledger.models import Account, Currency, CurrencyKind, JournalEntry
from ftex_ledger.store import LedgerStore

from .exceptions import FtexInvalidRequestError, FtexTransientUpstreamError
from .sealing import PURPOSE_CURSOR, TokenSealer

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageCursor:
    """Filter state carried between pages."""
    kind: CurrencyKind
    currency: str
    page_size: int
    offset: int = 0
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "currency": self.currency,
            "page_size": self.page_size,
            "offset": self.offset,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageCursor":
        start, end = data.get("period_start"), data.get("period_end")
        return cls(
            kind=CurrencyKind(data["kind"]),
            currency=str(data["currency"]),
            page_size=int(data["page_size"]),
            offset=int(data.get("offset", 0)),
            period_start=datetime.fromisoformat(start) if start else None,
            period_end=datetime.fromisoformat(end) if end else None,
        )


@dataclass
class Page(Generic[T]):
    """One page of results and the sealed cursor of the next, empty when done."""
    rows: List[T] = field(default_factory=list)
    next_cursor: str = ""

    @property
    def has_more(self) -> bool:
        return bool(self.next_cursor)


def month_period(month: Any, year: Any, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Compute ``[start, end)`` of a calendar month in an IANA timezone, in UTC.

    Raises FtexInvalidRequestError on an invalid month, year or timezone.
    """
    try:
        month_number = int(month)
        year_number = int(year)
    except (TypeError, ValueError):
        raise FtexInvalidRequestError("month and year must be numbers") from None
    if not 1 <= month_number <= 12:
        raise FtexInvalidRequestError("month must be between 1 and 12", field="month")
    if not 1000 <= year_number <= 9999:
        raise FtexInvalidRequestError("year must be a 4-digit number", field="year")

    try:
        tz = ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise FtexInvalidRequestError("unknown timezone", field="timezone") from None

    try:
        start = datetime(year_number, month_number, 1, tzinfo=tz)
        if month_number == 12:
            end = datetime(year_number + 1, 1, 1, tzinfo=tz)
        else:
            end = datetime(year_number, month_number + 1, 1, tzinfo=tz)
    except ValueError:
        raise FtexInvalidRequestError("period is out of range", field="year") from None
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class PaginationService:
    """Builds, seals and opens pagination cursors and fetches pages from the ledger."""

    def __init__(
        self,
        ledger: LedgerStore,
        sealer: TokenSealer,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self._ledger = ledger
        self._sealer = sealer
        self._max_page_size = max(1, max_page_size)
        self._default_page_size = min(max(1, default_page_size), self._max_page_size)

    def seal_cursor(self, cursor: PageCursor) -> str:
        return self._sealer.seal_json(cursor.to_dict(), PURPOSE_CURSOR)

    def open_cursor(self, token: str) -> PageCursor:
        payload = self._sealer.open_json(token, PURPOSE_CURSOR, field="pageCursor")
        try:
            cursor = PageCursor.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            raise FtexInvalidRequestError("invalid cursor token", field="pageCursor") from None
        if cursor.page_size < 1 or cursor.offset < 0:
            raise FtexInvalidRequestError("invalid cursor token", field="pageCursor")
        return cursor

    def resolve_page_size(self, page_size: Optional[int]) -> int:
        """Default when absent, reject non-positive, clamp to the maximum."""
        if page_size is None:
            return self._default_page_size
        if page_size <= 0:
            raise FtexInvalidRequestError("page size must be positive", field="pageSize")
        return min(page_size, self._max_page_size)

    async def balance_page(
        self,
        principal: UUID,
        kind: CurrencyKind,
        page_cursor: str = "",
        page_size: Optional[int] = None,
    ) -> Page[Account]:
        size = self.resolve_page_size(page_size)
        start_code: Optional[str] = None
        if page_cursor:
            cursor = self.open_cursor(page_cursor)
            if cursor.kind != kind:
                raise FtexInvalidRequestError("cursor does not belong to this listing", field="pageCursor")
            start_code, size = cursor.currency, cursor.page_size

        try:
            rows = await self._ledger.balance_page(principal, kind, start_code, size + 1)
        except LedgerError as e:
            logger.error(f"Balance page failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e

        if len(rows) <= size:
            return Page(rows=list(rows))

        next_cursor = PageCursor(kind=kind, currency=rows[size].currency.code, page_size=size)
        return Page(rows=list(rows[:size]), next_cursor=self.seal_cursor(next_cursor))

    async def transaction_page(
        self,
        principal: UUID,
        currency: Currency,
        page_cursor: str = "",
        page_size: Optional[int] = None,
        month: Any = None,
        year: Any = None,
        timezone_name: Optional[str] = None,
    ) -> Page[JournalEntry]:
        size = self.resolve_page_size(page_size)
        if page_cursor:
            cursor = self.open_cursor(page_cursor)
            if cursor.kind != currency.kind or cursor.currency != currency.code:
                raise FtexInvalidRequestError("cursor does not belong to this currency", field="pageCursor")
            if cursor.period_start is None or cursor.period_end is None:
                raise FtexInvalidRequestError("invalid cursor token", field="pageCursor")
        else:
            if month in (None, "") or year in (None, ""):
                raise FtexInvalidRequestError("missing required parameters: month and year")
            start, end = month_period(month, year, timezone_name)
            cursor = PageCursor(
                kind=currency.kind,
                currency=currency.code,
                page_size=size,
                offset=0,
                period_start=start,
                period_end=end,
            )

        try:
            rows = await self._ledger.tx_by_period(
                principal,
                currency,
                cursor.period_start,
                cursor.period_end,
                cursor.offset,
                cursor.page_size + 1,
            )
        except LedgerError as e:
            logger.error(f"Transaction page failed in ledger: {e.code}: {e.message}")
            raise FtexTransientUpstreamError() from e

        if len(rows) <= cursor.page_size:
            return Page(rows=list(rows))

        next_cursor = replace(cursor, offset=cursor.offset + cursor.page_size)
        return Page(rows=list(rows[:cursor.page_size]), next_cursor=self.seal_cursor(next_cursor))
