"""
Session/View Controller

A single state machine decides which screen is showing.

    loading ──recovery link──────────────▶ reset_password ──reset done──▶ login
       │
       ├──stored session──▶ dashboard ⇄ history
       │                        │          │
       └──no session─────▶ login ◀──logout─┘

Rules:
1. A recovery link (`access_token` + `type=recovery` in the URL
   fragment) wins over everything: no session lookup is done.
2. Otherwise the stored session decides: dashboard or login.
3. Auth-change notifications update the session and force dashboard
   (signed in) or login (signed out), overriding manual navigation.
   The recovery screen is not interrupted; it ends with a redirect.
4. Dashboard ⇄ history navigation needs a session.
5. Logout needs explicit confirmation.
6. A new password is checked locally (length, match) before it is sent.

DESIGN DECISION: Transitions are a pure function (`next_view`) over an
explicit table, so the rules above can be tested without any backend.
"""

import asyncio
from typing import Optional

import structlog

from temple_ledger.audit import ActivityLogger
from temple_ledger.config import get_settings
from temple_ledger.ledger.reconciler import ConfirmationRequiredError
from temple_ledger.models.activity import ActivityEventBuilder
from temple_ledger.models.session import (
    AuthSession,
    SessionState,
    View,
    ViewEvent,
    parse_recovery_fragment,
)
from temple_ledger.services.backend import (
    AuthError,
    AuthProviderInterface,
    AuthSubscription,
)
from temple_ledger.validation import validate_password_reset


logger = structlog.get_logger(__name__)


REGISTRATION_MESSAGE = "Registration successful. Check your email for confirmation (if enabled)."
RESET_EMAIL_MESSAGE = "Password reset email sent. Check your inbox."
RESET_SUCCESS_MESSAGE = "Password reset successful! Redirecting to login..."


class InvalidTransitionError(Exception):
    """The requested view change is not allowed from the current view."""

    def __init__(self, current: View, event: ViewEvent):
        self.current = current
        self.event = event
        super().__init__(f"Cannot handle {event.value} while on {current.value}")


# (current view, event) -> next view
_TRANSITIONS: dict[tuple[View, ViewEvent], View] = {
    (View.LOADING, ViewEvent.RECOVERY_DETECTED): View.RESET_PASSWORD,
    (View.LOADING, ViewEvent.SESSION_FOUND): View.DASHBOARD,
    (View.LOADING, ViewEvent.SESSION_MISSING): View.LOGIN,
    (View.DASHBOARD, ViewEvent.NAVIGATE_DASHBOARD): View.DASHBOARD,
    (View.DASHBOARD, ViewEvent.NAVIGATE_HISTORY): View.HISTORY,
    (View.HISTORY, ViewEvent.NAVIGATE_DASHBOARD): View.DASHBOARD,
    (View.HISTORY, ViewEvent.NAVIGATE_HISTORY): View.HISTORY,
    (View.DASHBOARD, ViewEvent.LOGOUT): View.LOGIN,
    (View.HISTORY, ViewEvent.LOGOUT): View.LOGIN,
    (View.RESET_PASSWORD, ViewEvent.RESET_COMPLETED): View.LOGIN,
}

_NAVIGATION_EVENTS = {ViewEvent.NAVIGATE_DASHBOARD, ViewEvent.NAVIGATE_HISTORY}


def next_view(current: View, event: ViewEvent, has_session: bool) -> View:
    """
    The view that follows `current` when `event` happens.

    Raises:
        InvalidTransitionError: If the event is not allowed here
    """
    if event == ViewEvent.AUTH_CHANGED:
        if current == View.RESET_PASSWORD:
            return current
        return View.DASHBOARD if has_session else View.LOGIN

    if event in _NAVIGATION_EVENTS and not has_session:
        raise InvalidTransitionError(current, event)

    try:
        return _TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current, event) from None


class SessionController:
    """
    Owns the SessionState for one page load.

    Provider failures never change the view; their message is stored in
    `state.message` for the screen to show inline.
    """

    def __init__(
        self,
        auth: AuthProviderInterface,
        activity: Optional[ActivityLogger] = None,
        state: Optional[SessionState] = None,
    ):
        self._auth = auth
        self._activity = activity
        self._settings = get_settings().app
        self._subscription: Optional[AuthSubscription] = None
        self.state = state or SessionState()

    @property
    def view(self) -> View:
        return self.state.view

    def _apply(self, event: ViewEvent) -> View:
        previous = self.state.view
        self.state.view = next_view(previous, event, self.state.is_authenticated)
        if self.state.view != previous:
            logger.debug("view_changed", previous=previous.value, current=self.state.view.value)
            if self._activity:
                self._activity.log(ActivityEventBuilder.view_changed(
                    previous.value,
                    self.state.view.value,
                    event.value,
                ))
        return self.state.view

    async def start(self, url_fragment: Optional[str] = None) -> View:
        """
        Resolve the first screen and start listening for auth changes.

        Calling it again once the first screen is resolved changes nothing.

        Args:
            url_fragment: The page URL fragment (with or without '#')
        """
        if self.state.view != View.LOADING:
            self._subscribe()
            return self.state.view

        recovery = parse_recovery_fragment(url_fragment)
        if recovery is not None:
            self.state.recovery = recovery
            self._apply(ViewEvent.RECOVERY_DETECTED)
        else:
            try:
                self.state.session = await self._auth.get_session()
            except AuthError as e:
                self.state.message = e.message
                self.state.session = None
            self._apply(
                ViewEvent.SESSION_FOUND if self.state.session else ViewEvent.SESSION_MISSING
            )

        self._subscribe()
        return self.state.view

    def _subscribe(self) -> None:
        if self._subscription is None:
            self._subscription = self._auth.on_auth_change(self.handle_auth_event)

    def handle_auth_event(self, event: str, session: Optional[AuthSession]) -> View:
        """Auth-change notification from the provider."""
        self.state.session = session
        if self._activity:
            self._activity.log(ActivityEventBuilder.auth_state_changed(
                event,
                session.user_id if session else None,
            ))
        return self._apply(ViewEvent.AUTH_CHANGED)

    def navigate(self, view: View) -> View:
        """
        Manual navigation between dashboard and history.

        Raises:
            InvalidTransitionError: Without a session, or to any other view
        """
        view = View(view)
        events = {
            View.DASHBOARD: ViewEvent.NAVIGATE_DASHBOARD,
            View.HISTORY: ViewEvent.NAVIGATE_HISTORY,
        }
        if view not in events:
            raise InvalidTransitionError(self.state.view, ViewEvent.NAVIGATE_DASHBOARD)
        return self._apply(events[view])

    async def sign_in(self, email: str, password: str) -> bool:
        """Sign in; on success the session is held and the dashboard shown."""
        self.state.message = None
        try:
            session = await self._auth.sign_in(email, password)
        except AuthError as e:
            self.state.message = e.message
            return False

        if self._activity:
            self._activity.log(ActivityEventBuilder.signed_in(session.user_id, session.email))
        self.handle_auth_event("SIGNED_IN", session)
        return True

    async def sign_up(self, email: str, password: str) -> bool:
        """Register a new account. The view does not change."""
        self.state.message = None
        try:
            await self._auth.sign_up(email, password)
        except AuthError as e:
            self.state.message = e.message
            return False

        if self._activity:
            self._activity.log(ActivityEventBuilder.registered(email))
        self.state.message = REGISTRATION_MESSAGE
        return True

    async def request_password_reset(self, email: str) -> bool:
        """Send the password reset email with the configured redirect URL."""
        self.state.message = None
        try:
            await self._auth.send_password_reset(
                email,
                self._settings.password_reset_redirect_url,
            )
        except AuthError as e:
            self.state.message = e.message
            return False

        if self._activity:
            self._activity.log(ActivityEventBuilder.password_reset_requested(email))
        self.state.message = RESET_EMAIL_MESSAGE
        return True

    async def logout(self, confirmed: bool = False) -> View:
        """
        Sign out and return to login.

        Raises:
            ConfirmationRequiredError: If the user has not confirmed
        """
        if not confirmed:
            raise ConfirmationRequiredError("Are you sure you want to log out?")

        user_id = self.state.session.user_id if self.state.session else None
        try:
            await self._auth.sign_out()
        except AuthError as e:
            self.state.message = e.message
            return self.state.view

        if self._activity:
            self._activity.log(ActivityEventBuilder.signed_out(user_id))
        if self.state.view in (View.DASHBOARD, View.HISTORY):
            self._apply(ViewEvent.LOGOUT)
        self.state.session = None
        self.state.message = None
        return self.state.view

    async def submit_password_reset(self, new_password: str, confirm_password: str) -> bool:
        """
        Set a new password from the recovery screen.

        Invalid input is rejected locally without calling the provider.
        On success the confirmation message is shown and a redirect to
        login is left pending (see finish_password_reset).
        """
        self.state.message = None

        result = validate_password_reset(
            new_password,
            confirm_password,
            min_length=self._settings.min_password_length,
        )
        if not result.is_valid:
            self.state.message = result.first_message()
            return False

        try:
            await self._auth.update_password(new_password, recovery=self.state.recovery)
        except AuthError as e:
            self.state.message = e.message
            return False

        if self._activity:
            self._activity.log(ActivityEventBuilder.password_reset_completed())
        self.state.message = RESET_SUCCESS_MESSAGE
        self.state.redirect_pending = True
        return True

    async def finish_password_reset(self) -> View:
        """
        Wait the redirect delay, end the recovery session, then show the
        login screen.

        The provider holds a session after the reset; it is signed out so a
        later token refresh cannot open the dashboard without a sign-in.
        """
        if not self.state.redirect_pending:
            return self.state.view

        await asyncio.sleep(self._settings.reset_redirect_delay_seconds)
        try:
            await self._auth.sign_out()
        except AuthError as e:
            logger.warning("recovery_sign_out_failed", error=e.message)
        self._apply(ViewEvent.RESET_COMPLETED)
        self.state.redirect_pending = False
        self.state.recovery = None
        self.state.session = None
        self.state.message = None
        return self.state.view

    def close(self) -> None:
        """Release the auth-change subscription."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
