"""
Tests for the Transaction Editor
"""

import asyncio
from datetime import date

import pytest

from temple_ledger.audit import ActivityLogger
from temple_ledger.ledger import (
    SessionRequiredError,
    TransactionEditor,
    TransactionReconciler,
    placeholder_for,
    title_for,
)
from temple_ledger.models import ActivityEventType, TransactionForm, TransactionKind
from temple_ledger.services.backend import BackendError
from temple_ledger.validation import ValidationFailedError

from conftest import FakeAuthProvider


class TestLabels:
    def test_placeholders(self):
        assert placeholder_for(TransactionKind.INCOME) == "Source (eg Donation)"
        assert placeholder_for(TransactionKind.EXPENSE) == "Category (eg Maintenance)"

    def test_titles(self):
        assert title_for(TransactionKind.INCOME) == "Add Income"
        assert title_for(TransactionKind.EXPENSE, editing=True) == "Edit Expense"


class TestCreate:
    """Creating new rows."""

    def test_income_goes_to_source_column(self, store, auth):
        editor = TransactionEditor(store, auth)
        form = TransactionForm(
            kind=TransactionKind.INCOME,
            date="2024-04-01",
            category_label=" Donation ",
            amount="501.50",
            notes="",
        )
        asyncio.run(editor.save(form))

        _, table, payload = next(c for c in store.calls if c[0] == "insert")
        assert table == "income"
        assert payload == {
            "date": "2024-04-01",
            "source": "Donation",
            "amount": "501.50",
            "notes": None,
            "user_id": "user-1",
        }

    def test_expense_goes_to_category_column(self, store, auth):
        editor = TransactionEditor(store, auth)
        form = TransactionForm(
            kind=TransactionKind.EXPENSE,
            date=date(2024, 4, 2),
            category_label="Flowers",
            amount=75,
            notes="Garlands",
        )
        asyncio.run(editor.save(form))

        _, table, payload = next(c for c in store.calls if c[0] == "insert")
        assert table == "expenses"
        assert payload["category"] == "Flowers"
        assert "source" not in payload
        assert payload["notes"] == "Garlands"

    def test_invalid_form_sends_nothing(self, store, auth):
        editor = TransactionEditor(store, auth)
        form = TransactionForm(kind=TransactionKind.INCOME, date="", category_label="", amount="abc")

        with pytest.raises(ValidationFailedError) as exc_info:
            asyncio.run(editor.save(form))

        fields = {issue.field for issue in exc_info.value.result.issues}
        assert fields == {"date", "category_label", "amount"}
        assert not any(c[0] == "insert" for c in store.calls)

    def test_create_needs_session(self, store):
        editor = TransactionEditor(store, FakeAuthProvider())
        form = TransactionForm(kind=TransactionKind.INCOME, date="2024-04-01", category_label="A", amount="1")

        with pytest.raises(SessionRequiredError):
            asyncio.run(editor.save(form))
        assert not any(c[0] == "insert" for c in store.calls)

    def test_backend_error_is_raised_and_logged(self, store, auth):
        activity = ActivityLogger()
        editor = TransactionEditor(store, auth, activity=activity)
        store.fail_with = "new row violates row-level security policy"
        form = TransactionForm(kind=TransactionKind.EXPENSE, date="2024-04-01", category_label="A", amount="1")

        with pytest.raises(BackendError, match="row-level security"):
            asyncio.run(editor.save(form))
        assert activity.recent()[0].event_type == ActivityEventType.BACKEND_ERROR

    def test_created_row_appears_in_unified_list(self, store, auth):
        editor = TransactionEditor(store, auth)
        reconciler = TransactionReconciler(store)
        form = TransactionForm(kind=TransactionKind.EXPENSE, date="2024-03-10", category_label="Oil", amount="9")

        asyncio.run(editor.save(form))
        items = asyncio.run(reconciler.load_all())

        assert items[0].category_label == "Oil"
        assert len(items) == 4


class TestUpdate:
    """Editing existing rows."""

    def test_updates_same_row_by_id(self, store, auth):
        editor = TransactionEditor(store, auth)
        reconciler = TransactionReconciler(store)
        existing = next(t for t in asyncio.run(reconciler.load_all()) if t.key == "exp-7")

        form = TransactionForm.from_transaction(existing)
        form.amount = "45"
        asyncio.run(editor.save(form, existing=existing))

        _, table, row_id, payload = next(c for c in store.calls if c[0] == "update")
        assert (table, row_id) == ("expenses", 7)
        assert payload["amount"] == "45"
        assert "user_id" not in payload

        reloaded = asyncio.run(reconciler.load_all())
        assert len(reloaded) == 3
        assert next(t for t in reloaded if t.key == "exp-7").amount == 45

    def test_kind_cannot_change(self, store, auth):
        editor = TransactionEditor(store, auth)
        existing = asyncio.run(TransactionReconciler(store).load_all())[0]
        form = TransactionForm(
            kind=TransactionKind.EXPENSE,
            date="2024-01-01",
            category_label="A",
            amount="1",
        )
        assert existing.kind == TransactionKind.INCOME

        with pytest.raises(ValidationFailedError):
            asyncio.run(editor.save(form, existing=existing))
        assert not any(c[0] in ("update", "insert") for c in store.calls)
