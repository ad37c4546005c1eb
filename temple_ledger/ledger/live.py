"""
Live Ledger Views

The dashboard and history screens stay current by listening to change
notifications on both ledger tables. Any insert, update or delete
triggers a full reload of the screen's data.

Lifecycle:
    mount()   -> subscribe to `income` and `expenses`, load once
    (change)  -> schedule refresh() on the running loop
    unmount() -> release the subscription

There is no debouncing and no ordering between overlapping reloads:
the last refresh to finish wins. `version` is bumped after every
completed refresh so a front end can tell that it needs to redraw.
"""

import asyncio
from typing import Optional

import structlog

from temple_ledger.models.transaction import (
    LEDGER_TABLES,
    CategoryTotal,
    LedgerSummary,
    SortOrder,
    Transaction,
    TransactionFilter,
    TransactionKind,
)
from temple_ledger.ledger.reconciler import (
    TransactionReconciler,
    filter_transactions,
    sort_transactions,
)
from temple_ledger.services.backend import (
    BackendError,
    ChangeEvent,
    ChangeFeedInterface,
    Subscription,
)


logger = structlog.get_logger(__name__)


class LiveView:
    """Base class for a screen that reloads on table changes."""

    channel_name = "ledger-changes"

    def __init__(
        self,
        reconciler: TransactionReconciler,
        change_feed: Optional[ChangeFeedInterface] = None,
    ):
        self._reconciler = reconciler
        self._change_feed = change_feed
        self._subscription: Optional[Subscription] = None
        self._pending: set[asyncio.Task] = set()
        self.loading = False
        self.error: Optional[str] = None
        self.version = 0

    @property
    def is_mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def mount(self) -> None:
        """Start listening for changes and load the initial data."""
        if self._change_feed is not None and not self.is_mounted:
            try:
                self._subscription = await self._change_feed.subscribe(
                    self.channel_name,
                    LEDGER_TABLES,
                    self._on_change,
                )
            except BackendError as e:
                # The data still loads; it just won't update by itself
                logger.warning("view_subscribe_failed", view=self.channel_name, error=e.message)
        await self.refresh()

    async def unmount(self) -> None:
        """Stop listening. Reloads already in flight are left to finish."""
        if self._subscription is not None and self._change_feed is not None:
            await self._change_feed.release(self._subscription)
        self._subscription = None

    def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(
            "ledger_change",
            view=self.channel_name,
            table=event.table,
            event_type=event.event_type,
        )
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_refreshes(self) -> None:
        """Wait until every scheduled reload has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def refresh(self) -> None:
        """Reload the view's data, recording any backend error."""
        self.loading = True
        try:
            await self._load()
            self.error = None
        except BackendError as e:
            logger.warning("view_refresh_failed", view=self.channel_name, error=e.message)
            self.error = e.message
        except ValueError as e:
            logger.warning("view_refresh_failed", view=self.channel_name, error=str(e))
            self.error = f"Could not read ledger data: {e}"
        finally:
            self.loading = False
            self.version += 1

    async def _load(self) -> None:
        raise NotImplementedError


class DashboardView(LiveView):
    """Totals, per-category breakdowns and the recent-transactions list."""

    channel_name = "dashboard-changes"

    def __init__(
        self,
        reconciler: TransactionReconciler,
        change_feed: Optional[ChangeFeedInterface] = None,
    ):
        super().__init__(reconciler, change_feed)
        self.summary = LedgerSummary()
        self.income_breakdown: list[CategoryTotal] = []
        self.expense_breakdown: list[CategoryTotal] = []
        self.recent: list[Transaction] = []

    async def _load(self) -> None:
        summary, income, expenses, recent = await asyncio.gather(
            self._reconciler.summary(),
            self._reconciler.category_breakdown(TransactionKind.INCOME),
            self._reconciler.category_breakdown(TransactionKind.EXPENSE),
            self._reconciler.load_recent(),
        )
        self.summary = summary
        self.income_breakdown = income
        self.expense_breakdown = expenses
        self.recent = recent


class HistoryView(LiveView):
    """The full transaction list with filter, sort, edit and delete."""

    channel_name = "history-changes"

    def __init__(
        self,
        reconciler: TransactionReconciler,
        change_feed: Optional[ChangeFeedInterface] = None,
    ):
        super().__init__(reconciler, change_feed)
        self.items: list[Transaction] = []
        self.filter = TransactionFilter.ALL
        self.sort_order = SortOrder.DATE_DESC

    async def _load(self) -> None:
        self.items = await self._reconciler.load_all()

    def visible(self) -> list[Transaction]:
        """The list as shown: filtered, then sorted."""
        return sort_transactions(
            filter_transactions(self.items, self.filter),
            self.sort_order,
        )

    def find(self, key: str) -> Optional[Transaction]:
        """Look up a transaction by its cross-table key (e.g. 'exp-4')."""
        for item in self.items:
            if item.key == key:
                return item
        return None

    async def delete(self, transaction: Transaction, confirmed: bool = False) -> None:
        """Delete after confirmation and show the reloaded list."""
        self.items = await self._reconciler.delete(transaction, confirmed=confirmed)
        self.version += 1
