"""
Shared fixtures: in-memory fakes of the backend interfaces.

No test talks to a real backend.
"""

import itertools
from typing import Any, Optional, Sequence

import pytest

from temple_ledger.config import get_settings
from temple_ledger.models.session import AuthSession, RecoveryToken
from temple_ledger.services.backend import (
    AggregationServiceInterface,
    AggregationUnavailableError,
    AuthError,
    AuthProviderInterface,
    AuthSubscription,
    BackendError,
    ChangeEvent,
    ChangeFeedInterface,
    NotFoundError,
    RecordStoreInterface,
    Subscription,
)


class InMemoryRecordStore(RecordStoreInterface):
    """Tables as lists of dicts, in insertion order."""

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None):
        self.tables: dict[str, list[dict]] = {"income": [], "expenses": []}
        for name, rows in (tables or {}).items():
            self.tables[name] = [dict(row) for row in rows]
        self._ids = itertools.count(1000)
        self.calls: list[tuple] = []
        self.fail_with: Optional[str] = None

    def _check(self, operation: str) -> None:
        if self.fail_with:
            raise BackendError(self.fail_with, operation=operation)

    async def select_rows(self, table, columns="*", limit=None, newest_first=False):
        self.calls.append(("select", table, columns, limit, newest_first))
        self._check("select")
        rows = [dict(row) for row in self.tables[table]]
        if newest_first:
            rows.sort(key=lambda r: str(r["date"]), reverse=True)
        if columns != "*":
            wanted = columns.split(",")
            rows = [{k: row.get(k) for k in wanted} for row in rows]
        return rows[:limit] if limit is not None else rows

    async def insert_row(self, table, values):
        self.calls.append(("insert", table, values))
        self._check("insert")
        row = {"id": next(self._ids), **values}
        self.tables[table].append(row)
        return row

    async def update_row(self, table, row_id, values):
        self.calls.append(("update", table, row_id, values))
        self._check("update")
        for row in self.tables[table]:
            if row["id"] == row_id:
                row.update(values)
                return
        raise NotFoundError(f"{table} row {row_id} was not found", operation="update")

    async def delete_row(self, table, row_id):
        self.calls.append(("delete", table, row_id))
        self._check("delete")
        remaining = [r for r in self.tables[table] if r["id"] != row_id]
        if len(remaining) == len(self.tables[table]):
            raise NotFoundError(f"{table} row {row_id} was not found", operation="delete")
        self.tables[table] = remaining


class StubAggregationService(AggregationServiceInterface):
    """Returns canned rows, or raises when an endpoint is marked missing."""

    def __init__(
        self,
        all_rows: Optional[list[dict]] = None,
        recent_rows: Optional[list[dict]] = None,
        summary_row: Optional[dict] = None,
        unavailable: bool = False,
    ):
        self.all_rows = all_rows or []
        self.recent_rows = recent_rows or []
        self.summary_row = summary_row
        self.unavailable = unavailable
        self.recent_limits: list[int] = []

    async def all_transactions(self):
        if self.unavailable:
            raise AggregationUnavailableError("function not found", operation="all_transactions")
        return self.all_rows

    async def recent_transactions(self, limit):
        self.recent_limits.append(limit)
        if self.unavailable:
            raise AggregationUnavailableError("function not found", operation="recent_transactions")
        return self.recent_rows

    async def ledger_summary(self):
        if self.unavailable:
            raise AggregationUnavailableError("relation does not exist", operation="ledger_summary")
        return self.summary_row


class FakeAuthSubscription(AuthSubscription):
    def __init__(self, provider: "FakeAuthProvider", callback):
        self._provider = provider
        self._callback = callback

    def unsubscribe(self):
        if self._callback in self._provider.listeners:
            self._provider.listeners.remove(self._callback)


class FakeAuthProvider(AuthProviderInterface):
    """
    Auth provider with a single stored session.

    Set `errors[<method>]` to make that call fail with the given message.
    """

    def __init__(self, session: Optional[AuthSession] = None):
        self.session = session
        self.listeners: list = []
        self.errors: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.accounts: dict[str, str] = {}

    def _check(self, method: str) -> None:
        if method in self.errors:
            raise AuthError(self.errors[method], operation=method)

    def emit(self, event: str, session: Optional[AuthSession]) -> None:
        self.session = session
        for callback in list(self.listeners):
            callback(event, session)

    async def sign_up(self, email, password):
        self.calls.append(("sign_up", email))
        self._check("sign_up")
        self.accounts[email] = password

    async def sign_in(self, email, password):
        self.calls.append(("sign_in", email))
        self._check("sign_in")
        self.session = AuthSession(user_id=f"user-{email}", email=email, access_token="tok")
        return self.session

    async def sign_out(self):
        self.calls.append(("sign_out",))
        self._check("sign_out")
        self.session = None

    async def get_session(self):
        self.calls.append(("get_session",))
        self._check("get_session")
        return self.session

    def on_auth_change(self, callback):
        self.listeners.append(callback)
        return FakeAuthSubscription(self, callback)

    async def update_password(self, new_password, recovery: Optional[RecoveryToken] = None):
        self.calls.append(("update_password", new_password, recovery))
        self._check("update_password")

    async def send_password_reset(self, email, redirect_url):
        self.calls.append(("send_password_reset", email, redirect_url))
        self._check("send_password_reset")


class FakeChangeFeed(ChangeFeedInterface):
    """Change feed whose notifications are triggered by the test."""

    def __init__(self):
        self.subscriptions: list[tuple[Subscription, Any]] = []
        self.released: list[str] = []

    async def subscribe(self, name: str, tables: Sequence[str], callback):
        subscription = Subscription(name=name, tables=tuple(tables))
        self.subscriptions.append((subscription, callback))
        return subscription

    async def release(self, subscription):
        subscription.active = False
        self.released.append(subscription.name)
        self.subscriptions = [
            (s, cb) for s, cb in self.subscriptions if s is not subscription
        ]

    @property
    def active_names(self) -> list[str]:
        return [s.name for s, _ in self.subscriptions if s.active]

    def emit(self, table: str, event_type: str = "INSERT", record: Optional[dict] = None) -> None:
        event = ChangeEvent(table=table, event_type=event_type, record=record or {})
        for subscription, callback in list(self.subscriptions):
            if subscription.active and table in subscription.tables:
                callback(event)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def app_settings(monkeypatch):
    """Deterministic settings for every test."""
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("RESET_REDIRECT_DELAY_SECONDS", "0")
    monkeypatch.setenv("PASSWORD_RESET_REDIRECT_URL", "https://ledger.example.org")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def income_rows():
    return [
        {"id": 1, "date": "2024-03-01", "source": "Donation", "amount": 100, "notes": None},
        {"id": 2, "date": "2024-03-05", "source": "Festival", "amount": 250, "notes": "Holi"},
    ]


@pytest.fixture
def expense_rows():
    return [
        {"id": 7, "date": "2024-03-03", "category": "Maintenance", "amount": 40, "notes": ""},
    ]


@pytest.fixture
def store(income_rows, expense_rows):
    return InMemoryRecordStore({"income": income_rows, "expenses": expense_rows})


@pytest.fixture
def session():
    return AuthSession(user_id="user-1", email="priest@example.org", access_token="tok")


@pytest.fixture
def auth(session):
    return FakeAuthProvider(session=session)


@pytest.fixture
def change_feed():
    return FakeChangeFeed()
