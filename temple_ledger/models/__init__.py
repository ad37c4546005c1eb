"""
Data Models Package

This package contains all Pydantic models used in Temple Ledger.
All data flowing through the system must conform to these schemas.
"""

from temple_ledger.models.transaction import (
    KIND_SPECS,
    LEDGER_TABLES,
    UNCATEGORIZED,
    CategoryTotal,
    KindSpec,
    LedgerSummary,
    SortOrder,
    Transaction,
    TransactionFilter,
    TransactionForm,
    TransactionKind,
    format_currency,
    spec_for,
)
from temple_ledger.models.session import (
    AuthSession,
    RecoveryToken,
    SessionState,
    View,
    ViewEvent,
    parse_recovery_fragment,
)
from temple_ledger.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)

__all__ = [
    # Ledger models
    "KIND_SPECS",
    "LEDGER_TABLES",
    "UNCATEGORIZED",
    "CategoryTotal",
    "KindSpec",
    "LedgerSummary",
    "SortOrder",
    "Transaction",
    "TransactionFilter",
    "TransactionForm",
    "TransactionKind",
    "format_currency",
    "spec_for",
    # Session models
    "AuthSession",
    "RecoveryToken",
    "SessionState",
    "View",
    "ViewEvent",
    "parse_recovery_fragment",
    # Activity models
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivityEventType",
    "ActivitySeverity",
]
