"""
Transaction Reconciler

Merges the `income` and `expenses` tables into one transaction feed.

DESIGN DECISION: The server may offer ready-made aggregation endpoints
(a unified list, a recent list, a totals view). When they answer with
data we use that data verbatim. When they are missing, failing or empty
we fetch both tables and merge on the client:

    income rows  ─┐
                  ├─ map through KIND_SPECS ─ concatenate ─ stable sort by date desc
    expense rows ─┘

GUARANTEES (client-side merge):
- Every source row appears exactly once, nothing is invented
- Newest first; rows with the same date keep their fetch order

The reconciler owns no state. Every call is a fresh projection of
whatever the Record Store holds right now.
"""

import asyncio
from collections.abc import Iterable
from decimal import Decimal
from operator import attrgetter
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from temple_ledger.audit import ActivityLogger
from temple_ledger.config import get_settings
from temple_ledger.models.activity import ActivityEventBuilder
from temple_ledger.models.transaction import (
    UNCATEGORIZED,
    CategoryTotal,
    LedgerSummary,
    SortOrder,
    Transaction,
    TransactionFilter,
    TransactionKind,
    spec_for,
)
from temple_ledger.services.backend import (
    AggregationServiceInterface,
    BackendError,
    RecordStoreInterface,
)


logger = structlog.get_logger(__name__)


class ConfirmationRequiredError(Exception):
    """A destructive action was requested without explicit confirmation."""
    pass


# =============================================================================
# PURE VIEW OPERATIONS
# =============================================================================

def rows_to_transactions(
    kind: TransactionKind,
    rows: Iterable[dict[str, Any]],
) -> list[Transaction]:
    """
    Map raw rows of one table to Transactions, in order.

    A malformed row (no id, no usable date, negative amount) is logged
    and left out; it never hides the rest of the ledger.
    """
    table = spec_for(kind).table
    transactions = []
    for row in rows:
        try:
            transactions.append(Transaction.from_row(kind, row))
        except (KeyError, ValidationError) as e:
            logger.warning(
                "malformed_row_skipped",
                table=table,
                row_id=row.get("id"),
                error=str(e),
            )
    return transactions


def merge_transactions(
    income_rows: Iterable[dict[str, Any]],
    expense_rows: Iterable[dict[str, Any]],
) -> list[Transaction]:
    """
    Merge raw rows of both tables into one date-descending list.

    Income rows come first in the concatenation, so on equal dates
    income keeps its place ahead of expenses fetched in the same batch.
    Malformed rows are skipped (see rows_to_transactions).
    """
    merged = rows_to_transactions(TransactionKind.INCOME, income_rows)
    merged.extend(rows_to_transactions(TransactionKind.EXPENSE, expense_rows))
    # sorted() is stable, also with reverse=True
    return sorted(merged, key=attrgetter("date"), reverse=True)


def filter_transactions(
    items: Iterable[Transaction],
    transaction_filter: TransactionFilter = TransactionFilter.ALL,
) -> list[Transaction]:
    """Keep the transactions matching the filter, in their current order."""
    transaction_filter = TransactionFilter(transaction_filter)
    if transaction_filter == TransactionFilter.ALL:
        return list(items)
    wanted = TransactionKind(transaction_filter.value)
    return [t for t in items if t.kind == wanted]


def sort_transactions(
    items: Iterable[Transaction],
    order: SortOrder = SortOrder.DATE_DESC,
) -> list[Transaction]:
    """Re-order by date or amount. Ties keep their current order."""
    order = SortOrder(order)
    if order in (SortOrder.DATE_ASC, SortOrder.DATE_DESC):
        key = attrgetter("date")
    else:
        key = attrgetter("amount")
    descending = order in (SortOrder.DATE_DESC, SortOrder.AMOUNT_DESC)
    return sorted(items, key=key, reverse=descending)


def summarize(transactions: Iterable[Transaction]) -> LedgerSummary:
    """Client-side totals over a list of transactions."""
    total_income = Decimal("0")
    total_expenses = Decimal("0")
    for t in transactions:
        if t.kind == TransactionKind.INCOME:
            total_income += t.amount
        else:
            total_expenses += t.amount
    return LedgerSummary(total_income=total_income, total_expenses=total_expenses)


def group_by_category(
    transactions: Iterable[Transaction],
) -> list[CategoryTotal]:
    """Sum amounts per category label, in order of first appearance."""
    totals: dict[str, Decimal] = {}
    for t in transactions:
        name = t.category_label or UNCATEGORIZED
        totals[name] = totals.get(name, Decimal("0")) + t.amount
    return [CategoryTotal(name=name, value=value) for name, value in totals.items()]


# =============================================================================
# RECONCILER
# =============================================================================

class TransactionReconciler:
    """
    Reads the ledger through the Record Store and Aggregation Service.

    The aggregation service is optional: pass None when the backend has
    no server-side endpoints and every read merges client-side.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        aggregation: Optional[AggregationServiceInterface] = None,
        activity: Optional[ActivityLogger] = None,
    ):
        self._store = store
        self._aggregation = aggregation
        self._activity = activity
        self._settings = get_settings().app

    def _log_fallback(self, endpoint: str, reason: str) -> None:
        logger.info("aggregation_fallback", endpoint=endpoint, reason=reason)
        if self._activity:
            self._activity.log(ActivityEventBuilder.aggregation_fallback(endpoint, reason))

    async def _fetch_kind(
        self,
        kind: TransactionKind,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> list[dict[str, Any]]:
        spec = spec_for(kind)
        return await self._store.select_rows(
            spec.table,
            columns=f"id,date,{spec.column},amount,notes",
            limit=limit,
            newest_first=newest_first,
        )

    async def _merge_from_tables(
        self,
        limit_per_table: Optional[int] = None,
        newest_first: bool = False,
    ) -> list[Transaction]:
        income_rows, expense_rows = await asyncio.gather(
            self._fetch_kind(TransactionKind.INCOME, limit_per_table, newest_first),
            self._fetch_kind(TransactionKind.EXPENSE, limit_per_table, newest_first),
        )
        return merge_transactions(income_rows, expense_rows)

    async def load_all(self) -> list[Transaction]:
        """
        The complete unified transaction list, newest first.

        Uses the server's unified list when it returns rows; otherwise
        merges both tables client-side.
        """
        if self._aggregation is not None:
            try:
                rows = await self._aggregation.all_transactions()
                if rows:
                    return [Transaction.from_aggregate_row(row) for row in rows]
                self._log_fallback("all_transactions", "empty result")
            except (BackendError, KeyError, ValueError) as e:
                self._log_fallback("all_transactions", str(e))

        return await self._merge_from_tables()

    async def load_recent(self, limit: Optional[int] = None) -> list[Transaction]:
        """
        The most recent transactions (8 by default), newest first.

        Client-side fallback fetches at most `recent_fetch_cap` rows per
        table, newest first, then merges and truncates to `limit`.
        """
        limit = limit or self._settings.recent_transactions_limit

        if self._aggregation is not None:
            try:
                rows = await self._aggregation.recent_transactions(limit)
                if rows:
                    return [Transaction.from_aggregate_row(row) for row in rows]
                self._log_fallback("recent_transactions", "empty result")
            except (BackendError, KeyError, ValueError) as e:
                self._log_fallback("recent_transactions", str(e))

        merged = await self._merge_from_tables(
            limit_per_table=self._settings.recent_fetch_cap,
            newest_first=True,
        )
        return merged[:limit]

    async def delete(
        self,
        transaction: Transaction,
        confirmed: bool = False,
    ) -> list[Transaction]:
        """
        Delete the source row of a transaction, then reload.

        Args:
            transaction: The transaction to remove
            confirmed: Must be True - the user has to confirm deletes

        Returns:
            The reloaded unified list

        Raises:
            ConfirmationRequiredError: If not confirmed (nothing is sent)
            BackendError: If the backend rejects the delete (not retried)
        """
        if not confirmed:
            raise ConfirmationRequiredError("Delete this transaction?")

        table = spec_for(transaction.kind).table
        try:
            await self._store.delete_row(table, transaction.id)
        except BackendError as e:
            if self._activity:
                self._activity.log(ActivityEventBuilder.backend_error(f"delete {table}", e.message))
            raise

        if self._activity:
            self._activity.log(ActivityEventBuilder.transaction_deleted(table, transaction.id))

        return await self.load_all()

    async def summary(self) -> LedgerSummary:
        """
        Income, expense and balance totals.

        Reads the server's totals view; when that is unavailable the
        totals are recomputed from both tables. Either way the balance
        is income minus expenses.
        """
        if self._aggregation is not None:
            try:
                row = await self._aggregation.ledger_summary()
                if row:
                    return LedgerSummary.model_validate(row)
                self._log_fallback("ledger_summary", "no summary row")
            except (BackendError, ValueError) as e:
                self._log_fallback("ledger_summary", str(e))

        return summarize(await self._merge_from_tables())

    async def category_breakdown(self, kind: TransactionKind) -> list[CategoryTotal]:
        """Totals per funding source (income) or spending category (expense)."""
        kind = TransactionKind(kind)
        rows = await self._fetch_kind(kind)
        return group_by_category(rows_to_transactions(kind, rows))


