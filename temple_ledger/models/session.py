"""
Session and View Models for Temple Ledger

The whole page is driven by a single SessionState: which screen is
showing, who (if anyone) is signed in, and any one-time recovery token
that arrived with a password-reset link.
"""

from enum import Enum
from typing import Optional
from urllib.parse import parse_qs

from pydantic import BaseModel, ConfigDict, Field, model_validator


class View(str, Enum):
    """Screens the application can show."""
    LOADING = "loading"
    LOGIN = "login"
    DASHBOARD = "dashboard"
    HISTORY = "history"
    RESET_PASSWORD = "reset_password"


class ViewEvent(str, Enum):
    """Things that can move the application from one screen to another."""
    RECOVERY_DETECTED = "recovery_detected"
    SESSION_FOUND = "session_found"
    SESSION_MISSING = "session_missing"
    AUTH_CHANGED = "auth_changed"
    NAVIGATE_DASHBOARD = "navigate_dashboard"
    NAVIGATE_HISTORY = "navigate_history"
    LOGOUT = "logout"
    RESET_COMPLETED = "reset_completed"


class AuthSession(BaseModel):
    """The parts of a provider session the ledger cares about."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(
        ...,
        min_length=1,
        description="Id of the signed-in user (owner of ledger rows)"
    )
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class RecoveryToken(BaseModel):
    """
    One-time credential delivered by a password-reset email link.

    Either a session pair from the default link (``#access_token=...``)
    or a ``token_hash`` from a link template that puts it in the query
    string, which is verified with the provider before use.
    """
    model_config = ConfigDict(frozen=True)

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_hash: Optional[str] = None

    @model_validator(mode='after')
    def require_credential(self) -> "RecoveryToken":
        if not self.access_token and not self.token_hash:
            raise ValueError("A recovery link needs an access_token or a token_hash")
        return self


def parse_recovery_fragment(fragment: Optional[str]) -> Optional[RecoveryToken]:
    """
    Extract a recovery token from a URL fragment or query string.

    The provider appends ``#access_token=...&type=recovery`` (plus a
    refresh token and expiry) to the reset link; a customized link may
    carry ``?token_hash=...&type=recovery`` instead. Anything without
    ``type=recovery`` and one of those credentials is not a recovery link.
    """
    if not fragment:
        return None

    params = parse_qs(fragment.lstrip("#?"), keep_blank_values=False)
    access_token = params.get("access_token", [None])[0]
    token_hash = params.get("token_hash", [None])[0]
    link_type = params.get("type", [None])[0]

    if link_type != "recovery" or not (access_token or token_hash):
        return None

    return RecoveryToken(
        access_token=access_token,
        refresh_token=params.get("refresh_token", [None])[0],
        token_hash=token_hash,
    )


class SessionState(BaseModel):
    """
    Everything the Session/View Controller owns for one page load.

    Created at application start, mutated only by the controller.
    """

    view: View = View.LOADING
    session: Optional[AuthSession] = None
    recovery: Optional[RecoveryToken] = None
    message: Optional[str] = Field(
        default=None,
        description="Last inline message (provider error, validation, success)"
    )
    redirect_pending: bool = Field(
        default=False,
        description="A successful password reset is waiting to return to login"
    )

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None
