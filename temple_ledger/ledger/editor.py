"""
Transaction Editor

One form for both kinds of transaction. The kind decides the label
placeholder and which column receives it (`source` for income,
`category` for expenses); date, amount and notes are shared.

Flow:
1. Validate locally - nothing is sent if the form is invalid
2. Create: needs the signed-in user's id, inserts into the kind's table
3. Edit: updates the same row by id; the kind of an existing row
   never changes
4. Remote failure: the provider message is raised so the form can stay
   open and show it
"""

from typing import Optional

from temple_ledger.audit import ActivityLogger
from temple_ledger.models.activity import ActivityEventBuilder
from temple_ledger.models.transaction import (
    Transaction,
    TransactionForm,
    TransactionKind,
    spec_for,
)
from temple_ledger.services.backend import (
    AuthProviderInterface,
    BackendError,
    RecordStoreInterface,
)
from temple_ledger.validation import (
    TransactionValidator,
    ValidationFailedError,
    ValidationIssue,
    ValidationResult,
)


class SessionRequiredError(Exception):
    """Creating a transaction needs a signed-in user."""
    pass


def placeholder_for(kind: TransactionKind) -> str:
    """Placeholder text of the source/category field."""
    return spec_for(kind).placeholder


def title_for(kind: TransactionKind, editing: bool = False) -> str:
    """Form heading, e.g. 'Add Income' or 'Edit Expense'."""
    return f"{'Edit' if editing else 'Add'} {spec_for(kind).label}"


class TransactionEditor:
    """Creates and edits ledger rows from the transaction form."""

    def __init__(
        self,
        store: RecordStoreInterface,
        auth: AuthProviderInterface,
        validator: Optional[TransactionValidator] = None,
        activity: Optional[ActivityLogger] = None,
    ):
        self._store = store
        self._auth = auth
        self._validator = validator or TransactionValidator()
        self._activity = activity

    def _row_values(self, form: TransactionForm, result: ValidationResult) -> dict:
        """Column values for the kind's table."""
        values = result.values
        return {
            "date": values["date"].isoformat(),
            form.spec.column: values["category_label"],
            "amount": str(values["amount"]),
            "notes": values["notes"],
        }

    async def save(
        self,
        form: TransactionForm,
        existing: Optional[Transaction] = None,
    ) -> None:
        """
        Create a new row, or update `existing` in place.

        Raises:
            ValidationFailedError: Invalid input, nothing sent
            SessionRequiredError: Create without a signed-in user
            BackendError: The backend rejected the write
        """
        if existing is not None and form.kind != existing.kind:
            raise ValidationFailedError(ValidationResult(issues=[ValidationIssue(
                field="kind",
                issue_type="immutable",
                message=f"An existing {existing.kind.value} cannot be changed into {form.kind.value}",
            )]))

        result = self._validator.validate(form)
        if not result.is_valid:
            raise ValidationFailedError(result)

        if existing is None:
            await self._create(form, result)
        else:
            await self._update(form, result, existing)

    async def _create(self, form: TransactionForm, result: ValidationResult) -> None:
        session = await self._auth.get_session()
        if session is None or not session.user_id:
            raise SessionRequiredError("You must be signed in to add transactions")

        table = form.spec.table
        payload = self._row_values(form, result)
        payload["user_id"] = session.user_id

        try:
            await self._store.insert_row(table, payload)
        except BackendError as e:
            if self._activity:
                self._activity.log(ActivityEventBuilder.backend_error(f"insert {table}", e.message))
            raise

        if self._activity:
            self._activity.log(ActivityEventBuilder.transaction_created(
                table=table,
                user_id=session.user_id,
                amount=payload["amount"],
                label=payload[form.spec.column],
            ))

    async def _update(
        self,
        form: TransactionForm,
        result: ValidationResult,
        existing: Transaction,
    ) -> None:
        table = spec_for(existing.kind).table
        payload = self._row_values(form, result)

        try:
            await self._store.update_row(table, existing.id, payload)
        except BackendError as e:
            if self._activity:
                self._activity.log(ActivityEventBuilder.backend_error(f"update {table}", e.message))
            raise

        if self._activity:
            self._activity.log(ActivityEventBuilder.transaction_updated(
                table=table,
                row_id=existing.id,
                amount=payload["amount"],
            ))
