"""Ledger package: reconciliation, editing and live views."""

from temple_ledger.ledger.editor import (
    SessionRequiredError,
    TransactionEditor,
    placeholder_for,
    title_for,
)
from temple_ledger.ledger.live import DashboardView, HistoryView, LiveView
from temple_ledger.ledger.reconciler import (
    ConfirmationRequiredError,
    TransactionReconciler,
    filter_transactions,
    group_by_category,
    merge_transactions,
    rows_to_transactions,
    sort_transactions,
    summarize,
)

__all__ = [
    "ConfirmationRequiredError",
    "DashboardView",
    "HistoryView",
    "LiveView",
    "SessionRequiredError",
    "TransactionEditor",
    "TransactionReconciler",
    "filter_transactions",
    "group_by_category",
    "merge_transactions",
    "rows_to_transactions",
    "placeholder_for",
    "sort_transactions",
    "summarize",
    "title_for",
]
