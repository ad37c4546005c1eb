"""Validation package."""

from temple_ledger.validation.validator import (
    PASSWORD_MISMATCH,
    PASSWORD_TOO_SHORT,
    TransactionValidator,
    ValidationFailedError,
    ValidationIssue,
    ValidationResult,
    validate_password_reset,
)

__all__ = [
    "PASSWORD_MISMATCH",
    "PASSWORD_TOO_SHORT",
    "TransactionValidator",
    "ValidationFailedError",
    "ValidationIssue",
    "ValidationResult",
    "validate_password_reset",
]
