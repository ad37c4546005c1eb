"""
Tests for the Session/View Controller
"""

import asyncio

import pytest

from temple_ledger.audit import ActivityLogger
from temple_ledger.ledger import ConfirmationRequiredError
from temple_ledger.models import AuthSession, View, ViewEvent
from temple_ledger.session import (
    REGISTRATION_MESSAGE,
    RESET_EMAIL_MESSAGE,
    RESET_SUCCESS_MESSAGE,
    InvalidTransitionError,
    SessionController,
    next_view,
)

from conftest import FakeAuthProvider


RECOVERY_FRAGMENT = "#access_token=abc&refresh_token=r1&expires_in=3600&type=recovery"


class TestNextView:
    """Tests for the pure transition function."""

    def test_initial_resolution(self):
        assert next_view(View.LOADING, ViewEvent.RECOVERY_DETECTED, False) == View.RESET_PASSWORD
        assert next_view(View.LOADING, ViewEvent.SESSION_FOUND, True) == View.DASHBOARD
        assert next_view(View.LOADING, ViewEvent.SESSION_MISSING, False) == View.LOGIN

    def test_auth_change_forces_view(self):
        assert next_view(View.HISTORY, ViewEvent.AUTH_CHANGED, True) == View.DASHBOARD
        assert next_view(View.HISTORY, ViewEvent.AUTH_CHANGED, False) == View.LOGIN
        assert next_view(View.LOGIN, ViewEvent.AUTH_CHANGED, True) == View.DASHBOARD

    def test_auth_change_keeps_reset_screen(self):
        assert next_view(View.RESET_PASSWORD, ViewEvent.AUTH_CHANGED, True) == View.RESET_PASSWORD

    def test_navigation_needs_session(self):
        assert next_view(View.DASHBOARD, ViewEvent.NAVIGATE_HISTORY, True) == View.HISTORY
        with pytest.raises(InvalidTransitionError):
            next_view(View.DASHBOARD, ViewEvent.NAVIGATE_HISTORY, False)

    def test_unknown_transition(self):
        with pytest.raises(InvalidTransitionError):
            next_view(View.LOGIN, ViewEvent.RESET_COMPLETED, False)


class TestStart:
    """Tests for initial view resolution."""

    def test_recovery_wins_over_stored_session(self, auth):
        controller = SessionController(auth)
        view = asyncio.run(controller.start(RECOVERY_FRAGMENT))

        assert view == View.RESET_PASSWORD
        assert controller.state.recovery.access_token == "abc"
        assert ("get_session",) not in auth.calls

    def test_stored_session_goes_to_dashboard(self, auth):
        controller = SessionController(auth)
        assert asyncio.run(controller.start("")) == View.DASHBOARD
        assert controller.state.is_authenticated

    def test_no_session_goes_to_login(self):
        controller = SessionController(FakeAuthProvider())
        assert asyncio.run(controller.start(None)) == View.LOGIN

    def test_session_lookup_error_goes_to_login(self):
        auth = FakeAuthProvider()
        auth.errors["get_session"] = "network down"
        controller = SessionController(auth)

        assert asyncio.run(controller.start()) == View.LOGIN
        assert controller.state.message == "network down"

    def test_second_start_keeps_current_view(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start())
        controller.navigate(View.HISTORY)

        assert asyncio.run(controller.start(RECOVERY_FRAGMENT)) == View.HISTORY
        assert controller.state.recovery is None
        assert auth.calls.count(("get_session",)) == 1

    def test_start_subscribes_once(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start())
        asyncio.run(controller.start())
        assert len(auth.listeners) == 1
        controller.close()
        assert auth.listeners == []


class TestAuthEvents:
    """Auth notifications override manual navigation."""

    def test_sign_out_event_returns_to_login(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start())
        controller.navigate(View.HISTORY)

        auth.emit("SIGNED_OUT", None)

        assert controller.view == View.LOGIN
        assert not controller.state.is_authenticated

    def test_sign_in_event_shows_dashboard(self):
        auth = FakeAuthProvider()
        controller = SessionController(auth)
        asyncio.run(controller.start())

        auth.emit("SIGNED_IN", AuthSession(user_id="u2"))

        assert controller.view == View.DASHBOARD

    def test_recovery_screen_not_interrupted(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start(RECOVERY_FRAGMENT))

        auth.emit("PASSWORD_RECOVERY", AuthSession(user_id="u1"))

        assert controller.view == View.RESET_PASSWORD


class TestNavigationAndLogout:
    def test_navigate_between_screens(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start())
        assert controller.navigate(View.HISTORY) == View.HISTORY
        assert controller.navigate("dashboard") == View.DASHBOARD

    def test_navigate_without_session_is_refused(self):
        controller = SessionController(FakeAuthProvider())
        asyncio.run(controller.start())
        with pytest.raises(InvalidTransitionError):
            controller.navigate(View.HISTORY)
        assert controller.view == View.LOGIN

    def test_navigate_to_login_is_refused(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start())
        with pytest.raises(InvalidTransitionError):
            controller.navigate(View.LOGIN)

    def test_logout_requires_confirmation(self, auth):
        controller = SessionController(auth)
        asyncio.run(controller.start())

        with pytest.raises(ConfirmationRequiredError):
            asyncio.run(controller.logout())
        assert ("sign_out",) not in auth.calls
        assert controller.view == View.DASHBOARD

    def test_confirmed_logout(self, auth):
        activity = ActivityLogger()
        controller = SessionController(auth, activity=activity)
        asyncio.run(controller.start())

        assert asyncio.run(controller.logout(confirmed=True)) == View.LOGIN
        assert controller.state.session is None
        assert ("sign_out",) in auth.calls

    def test_logout_failure_keeps_view(self, auth):
        auth.errors["sign_out"] = "offline"
        controller = SessionController(auth)
        asyncio.run(controller.start())

        assert asyncio.run(controller.logout(confirmed=True)) == View.DASHBOARD
        assert controller.state.message == "offline"


class TestCredentials:
    def test_sign_in(self):
        auth = FakeAuthProvider()
        controller = SessionController(auth)
        asyncio.run(controller.start())

        assert asyncio.run(controller.sign_in("a@b.org", "secret1"))
        assert controller.view == View.DASHBOARD

    def test_sign_in_error_is_shown_verbatim(self):
        auth = FakeAuthProvider()
        auth.errors["sign_in"] = "Invalid login credentials"
        controller = SessionController(auth)
        asyncio.run(controller.start())

        assert not asyncio.run(controller.sign_in("a@b.org", "wrong"))
        assert controller.state.message == "Invalid login credentials"
        assert controller.view == View.LOGIN

    def test_sign_up_stays_on_login(self):
        controller = SessionController(FakeAuthProvider())
        asyncio.run(controller.start())

        assert asyncio.run(controller.sign_up("a@b.org", "secret1"))
        assert controller.view == View.LOGIN
        assert controller.state.message == REGISTRATION_MESSAGE

    def test_reset_email_uses_configured_redirect(self):
        auth = FakeAuthProvider()
        controller = SessionController(auth)
        asyncio.run(controller.start())

        assert asyncio.run(controller.request_password_reset("a@b.org"))
        assert ("send_password_reset", "a@b.org", "https://ledger.example.org") in auth.calls
        assert controller.state.message == RESET_EMAIL_MESSAGE


class TestPasswordReset:
    """Tests for the recovery screen."""

    @pytest.fixture
    def controller(self):
        controller = SessionController(FakeAuthProvider())
        asyncio.run(controller.start(RECOVERY_FRAGMENT))
        return controller

    def test_short_password_rejected_locally(self, controller):
        auth = controller._auth

        assert not asyncio.run(controller.submit_password_reset("abcde", "abcde"))
        assert "at least 6 characters" in controller.state.message
        assert not any(call[0] == "update_password" for call in auth.calls)

    def test_mismatch_rejected_locally(self, controller):
        assert not asyncio.run(controller.submit_password_reset("abcdef", "abcdeg"))
        assert controller.state.message == "Passwords don't match."

    def test_success_then_redirect_to_login(self, controller):
        auth = controller._auth

        assert asyncio.run(controller.submit_password_reset("abcdef", "abcdef"))
        assert controller.state.message == RESET_SUCCESS_MESSAGE
        assert controller.state.redirect_pending
        call = next(c for c in auth.calls if c[0] == "update_password")
        assert call[2].access_token == "abc"

        assert asyncio.run(controller.finish_password_reset()) == View.LOGIN
        assert controller.state.recovery is None
        assert controller.state.message is None
        assert ("sign_out",) in auth.calls

    def test_later_token_refresh_does_not_reopen_dashboard(self, controller):
        auth = controller._auth
        auth.emit("PASSWORD_RECOVERY", AuthSession(user_id="u1"))

        asyncio.run(controller.submit_password_reset("abcdef", "abcdef"))
        asyncio.run(controller.finish_password_reset())

        assert auth.session is None
        assert controller.view == View.LOGIN
        assert not controller.state.is_authenticated

    def test_sign_out_failure_still_shows_login(self, controller):
        controller._auth.errors["sign_out"] = "network down"

        asyncio.run(controller.submit_password_reset("abcdef", "abcdef"))

        assert asyncio.run(controller.finish_password_reset()) == View.LOGIN

    def test_provider_error_keeps_reset_screen(self, controller):
        controller._auth.errors["update_password"] = "Token has expired"

        assert not asyncio.run(controller.submit_password_reset("abcdef", "abcdef"))
        assert controller.state.message == "Token has expired"
        assert controller.view == View.RESET_PASSWORD
        assert asyncio.run(controller.finish_password_reset()) == View.RESET_PASSWORD
