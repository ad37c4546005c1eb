"""Session/view control package."""

from temple_ledger.session.controller import (
    REGISTRATION_MESSAGE,
    RESET_EMAIL_MESSAGE,
    RESET_SUCCESS_MESSAGE,
    InvalidTransitionError,
    SessionController,
    next_view,
)

__all__ = [
    "REGISTRATION_MESSAGE",
    "RESET_EMAIL_MESSAGE",
    "RESET_SUCCESS_MESSAGE",
    "InvalidTransitionError",
    "SessionController",
    "next_view",
]
