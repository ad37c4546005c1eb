"""
Core Ledger Models for Temple Ledger

Income and expenses live in two separate tables. For display they are
normalized into one Transaction shape; these models define that shape
and the mapping back to the source tables.

DESIGN DECISION: The choice of table and column for a kind of
transaction is made in exactly one place (KIND_SPECS). Every caller that
needs "which table?" or "which column?" asks the mapping instead of
branching on the kind itself.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


UNCATEGORIZED = "Uncategorized"

RowId = Union[int, str]


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """Which side of the ledger a transaction is on."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionFilter(str, Enum):
    """Filter choices offered on the history screen."""
    ALL = "all"
    INCOME = "income"
    EXPENSE = "expense"


class SortOrder(str, Enum):
    """Sort choices offered on the history screen."""
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"
    AMOUNT_DESC = "amount_desc"
    AMOUNT_ASC = "amount_asc"


# =============================================================================
# KIND MAPPING
# =============================================================================

class KindSpec(BaseModel):
    """Where a kind of transaction is stored and how the form labels it."""
    model_config = ConfigDict(frozen=True)

    kind: TransactionKind
    table: str
    column: str
    prefix: str
    label: str
    placeholder: str


KIND_SPECS: dict[TransactionKind, KindSpec] = {
    TransactionKind.INCOME: KindSpec(
        kind=TransactionKind.INCOME,
        table="income",
        column="source",
        prefix="inc",
        label="Income",
        placeholder="Source (eg Donation)",
    ),
    TransactionKind.EXPENSE: KindSpec(
        kind=TransactionKind.EXPENSE,
        table="expenses",
        column="category",
        prefix="exp",
        label="Expense",
        placeholder="Category (eg Maintenance)",
    ),
}

LEDGER_TABLES: tuple[str, ...] = tuple(spec.table for spec in KIND_SPECS.values())


def spec_for(kind: TransactionKind) -> KindSpec:
    """Look up the table/column mapping for a kind."""
    return KIND_SPECS[TransactionKind(kind)]


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    One income or expense row, normalized for display.

    Not persisted on its own: every Transaction comes from exactly one
    row of exactly one source table, and `id` is that row's id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: RowId = Field(
        ...,
        description="Id of the source row (unique within its table)"
    )
    date: dt.date = Field(
        ...,
        description="Transaction date, the primary sort key"
    )
    kind: TransactionKind
    category_label: str = Field(
        default=UNCATEGORIZED,
        description="Funding source for income, spending category for expenses"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount in the ledger currency"
    )
    notes: Optional[str] = None

    @field_validator('category_label', mode='before')
    @classmethod
    def default_category(cls, v: Any) -> Any:
        """Missing or blank labels are shown as Uncategorized."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNCATEGORIZED
        return v

    @field_validator('notes', mode='before')
    @classmethod
    def blank_notes_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @computed_field
    @property
    def key(self) -> str:
        """Identifier unique across both tables, e.g. ``inc-12``."""
        return f"{spec_for(self.kind).prefix}-{self.id}"

    @property
    def table(self) -> str:
        return spec_for(self.kind).table

    @classmethod
    def from_row(cls, kind: TransactionKind, row: dict[str, Any]) -> "Transaction":
        """Build a Transaction from a raw row of the table for `kind`."""
        spec = spec_for(kind)
        return cls(
            id=row["id"],
            date=row["date"],
            kind=spec.kind,
            category_label=row.get(spec.column),
            amount=row.get("amount") or 0,
            notes=row.get("notes"),
        )

    @classmethod
    def from_income_row(cls, row: dict[str, Any]) -> "Transaction":
        return cls.from_row(TransactionKind.INCOME, row)

    @classmethod
    def from_expense_row(cls, row: dict[str, Any]) -> "Transaction":
        return cls.from_row(TransactionKind.EXPENSE, row)

    @classmethod
    def from_aggregate_row(cls, row: dict[str, Any]) -> "Transaction":
        """
        Build a Transaction from a row of the server-side unified list.

        Those rows look like ``{id, date, type, category, amount, notes}``
        where ``category`` already holds the source for income rows.
        """
        return cls(
            id=row["id"],
            date=row["date"],
            kind=TransactionKind(row["type"]),
            category_label=row.get("category"),
            amount=row.get("amount") or 0,
            notes=row.get("notes"),
        )


# =============================================================================
# SUMMARY MODELS
# =============================================================================

class LedgerSummary(BaseModel):
    """
    Totals across the whole ledger.

    The balance is always derived from the two totals, whatever the
    server sent alongside them.
    """

    total_income: Decimal = Field(default=Decimal("0"))
    total_expenses: Decimal = Field(default=Decimal("0"))

    @field_validator('total_income', 'total_expenses', mode='before')
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expenses


class CategoryTotal(BaseModel):
    """Sum of one kind of transaction for a single source/category."""

    name: str
    value: Decimal


# =============================================================================
# EDITOR INPUT
# =============================================================================

class TransactionForm(BaseModel):
    """
    Raw values from the add/edit form.

    CRITICAL: This is UNVALIDATED input. Fields are kept as entered
    (strings, usually) and only become a row after validation.
    """

    kind: TransactionKind
    date: Any = None
    category_label: Any = None
    amount: Any = None
    notes: Optional[str] = None

    @property
    def spec(self) -> KindSpec:
        return spec_for(self.kind)

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionForm":
        """Pre-fill the form for editing an existing transaction."""
        return cls(
            kind=transaction.kind,
            date=transaction.date.isoformat(),
            category_label=transaction.category_label,
            amount=str(transaction.amount),
            notes=transaction.notes or "",
        )


def format_currency(amount: Union[Decimal, float, int, str, None], symbol: str = "₹") -> str:
    """Render an amount with a currency prefix and two decimals."""
    value = Decimal(str(amount or 0))
    return f"{symbol}{value:.2f}"
