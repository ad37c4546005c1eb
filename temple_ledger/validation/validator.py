"""
Input Validation

DESIGN DECISION: Everything the user types is validated locally BEFORE
any remote call is made:

TRANSACTION FORM:
- Date is required and must be a calendar date
- Source/category is required (non-empty)
- Amount is required, must parse as a number and must not be negative
- Notes are optional

PASSWORD RESET:
- New password must meet the minimum length
- Both password fields must match

IMPORTANT: Validation NEVER silently fixes input.
It reports issues so the form can show them inline.
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, Field

from temple_ledger.config import get_settings
from temple_ledger.models.transaction import TransactionForm


PASSWORD_TOO_SHORT = "Password must be at least {min_length} characters."
PASSWORD_MISMATCH = "Passwords don't match."


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(..., description="Field with the issue")
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'mismatch')"
    )
    message: str = Field(..., description="Human-readable description of the issue")


class ValidationResult(BaseModel):
    """Outcome of validating one form submission."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Cleaned values, only meaningful when is_valid
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def first_message(self) -> Optional[str]:
        return self.issues[0].message if self.issues else None


class ValidationFailedError(Exception):
    """Submission blocked by local validation. No remote call was made."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__("; ".join(result.messages))


def _parse_date(value: Any) -> Optional[dt.date]:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return dt.date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


class TransactionValidator:
    """Validates the add/edit transaction form."""

    def validate(self, form: TransactionForm) -> ValidationResult:
        """
        Check a form submission.

        Returns:
            ValidationResult; on success `values` holds the typed
            date, category label, amount and notes.
        """
        issues = []
        label = form.spec.label

        # Date
        parsed_date = None
        if form.date is None or (isinstance(form.date, str) and not form.date.strip()):
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Date is required",
            ))
        else:
            parsed_date = _parse_date(form.date)
            if parsed_date is None:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="invalid_format",
                    message=f"'{form.date}' is not a valid date (use YYYY-MM-DD)",
                ))

        # Source / category
        category_label = form.category_label.strip() if isinstance(form.category_label, str) else ""
        if not category_label:
            column = form.spec.column.capitalize()
            issues.append(ValidationIssue(
                field="category_label",
                issue_type="missing",
                message=f"{column} is required for {label.lower()}",
            ))

        # Amount
        amount = None
        if form.amount is None or (isinstance(form.amount, str) and not form.amount.strip()):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
            ))
        else:
            amount = _parse_amount(form.amount)
            if amount is None:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_format",
                    message=f"Amount '{form.amount}' is not a number",
                ))
            elif amount < 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount cannot be negative",
                ))

        if issues:
            return ValidationResult(issues=issues)

        notes = form.notes.strip() if form.notes else ""
        return ValidationResult(values={
            "date": parsed_date,
            "category_label": category_label,
            "amount": amount,
            "notes": notes or None,
        })


def validate_password_reset(
    new_password: str,
    confirm_password: str,
    min_length: Optional[int] = None,
) -> ValidationResult:
    """
    Check a new password before sending it to the auth provider.

    Length is checked first, then equality; only the first problem is
    reported, matching what the reset form shows.
    """
    if min_length is None:
        min_length = get_settings().app.min_password_length

    if len(new_password or "") < min_length:
        return ValidationResult(issues=[ValidationIssue(
            field="new_password",
            issue_type="too_short",
            message=PASSWORD_TOO_SHORT.format(min_length=min_length),
        )])

    if new_password != confirm_password:
        return ValidationResult(issues=[ValidationIssue(
            field="confirm_password",
            issue_type="mismatch",
            message=PASSWORD_MISMATCH,
        )])

    return ValidationResult()
