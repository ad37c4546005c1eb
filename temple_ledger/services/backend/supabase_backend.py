"""
Supabase Backend Implementation

DESIGN DECISION: Supabase provides everything the ledger needs from a
server - auth, Postgres tables behind a REST layer, callable SQL
functions for aggregation and realtime change notifications - so the
client stays a thin projection of the data.

TRADEOFFS:
- Row ownership is enforced by row-level security on the server; the
  client only supplies `user_id` on insert
- Aggregation endpoints are optional; when they are missing we report
  AggregationUnavailableError and the ledger merges client-side
- Data calls are NOT retried: a failure is shown to the user as-is.
  Only connection setup and realtime subscription are retried.

The implementation follows the abstract interfaces, so the ledger code
never imports supabase directly.
"""

from typing import Any, Optional, Sequence

import structlog
from supabase import AsyncClient, acreate_client
from tenacity import retry, stop_after_attempt, wait_exponential

from temple_ledger.config import get_settings
from temple_ledger.models.session import AuthSession, RecoveryToken
from temple_ledger.services.backend.interface import (
    AggregationServiceInterface,
    AggregationUnavailableError,
    AuthCallback,
    AuthError,
    AuthProviderInterface,
    AuthSubscription,
    BackendConnectionError,
    BackendError,
    ChangeCallback,
    ChangeEvent,
    ChangeFeedInterface,
    NotFoundError,
    RecordStoreInterface,
    Row,
    Subscription,
)


logger = structlog.get_logger(__name__)


def _provider_message(exc: Exception) -> str:
    """The provider's own error text, which we show verbatim."""
    message = getattr(exc, "message", None)
    return str(message) if message else str(exc)


def to_auth_session(session: Any) -> Optional[AuthSession]:
    """Convert a supabase Session object into our AuthSession."""
    if session is None or getattr(session, "user", None) is None:
        return None
    return AuthSession(
        user_id=str(session.user.id),
        email=getattr(session.user, "email", None),
        access_token=getattr(session, "access_token", None),
        refresh_token=getattr(session, "refresh_token", None),
    )


class SupabaseConnection:
    """
    Low-level Supabase client wrapper.

    One connection per signed-in browser session: the client holds
    that user's auth session in memory.
    """

    def __init__(self, client: Optional[AsyncClient] = None):
        self._client: Optional[AsyncClient] = client
        self._settings = get_settings().supabase

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def connect(self) -> AsyncClient:
        """Create the async client on first use."""
        if self._client is None:
            try:
                self._client = await acreate_client(
                    self._settings.url,
                    self._settings.anon_key,
                )
            except Exception as e:
                raise BackendConnectionError(
                    f"Failed to connect to Supabase: {_provider_message(e)}",
                    operation="connect",
                ) from e
        return self._client

    @property
    def client(self) -> AsyncClient:
        """The connected client. connect() must have been awaited."""
        if self._client is None:
            raise BackendConnectionError(
                "Supabase client is not connected yet",
                operation="connect",
            )
        return self._client


class SupabaseRecordStore(RecordStoreInterface):
    """Supabase implementation of the ledger tables."""

    def __init__(self, connection: SupabaseConnection):
        self._connection = connection

    async def select_rows(
        self,
        table: str,
        columns: str = "*",
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> list[Row]:
        client = await self._connection.connect()
        try:
            query = client.table(table).select(columns)
            if newest_first:
                query = query.order("date", desc=True)
            if limit is not None:
                query = query.limit(limit)
            response = await query.execute()
        except Exception as e:
            raise BackendError(_provider_message(e), operation=f"select {table}") from e
        return list(response.data or [])

    async def insert_row(self, table: str, values: Row) -> Row:
        client = await self._connection.connect()
        try:
            response = await client.table(table).insert(values).execute()
        except Exception as e:
            raise BackendError(_provider_message(e), operation=f"insert {table}") from e
        rows = response.data or []
        return rows[0] if rows else {}

    async def update_row(self, table: str, row_id: Any, values: Row) -> None:
        client = await self._connection.connect()
        try:
            response = await client.table(table).update(values).eq("id", row_id).execute()
        except Exception as e:
            raise BackendError(_provider_message(e), operation=f"update {table}") from e
        _require_rows(response, table, row_id, "update")

    async def delete_row(self, table: str, row_id: Any) -> None:
        client = await self._connection.connect()
        try:
            response = await client.table(table).delete().eq("id", row_id).execute()
        except Exception as e:
            raise BackendError(_provider_message(e), operation=f"delete {table}") from e
        _require_rows(response, table, row_id, "delete")


def _require_rows(response: Any, table: str, row_id: Any, operation: str) -> None:
    """
    Updates and deletes echo the affected rows back. None means the row is
    gone, or row-level security hides it from this user.
    """
    if not response.data:
        raise NotFoundError(
            f"{table} row {row_id} was not found",
            operation=f"{operation} {table}",
        )


class SupabaseAggregationService(AggregationServiceInterface):
    """
    Supabase implementation of the optional aggregation endpoints.

    The unified lists are SQL functions called over RPC; the totals
    come from a read-only view.
    """

    def __init__(self, connection: SupabaseConnection):
        self._connection = connection
        self._settings = get_settings().app

    async def _call(self, function: str, params: Optional[dict] = None) -> list[Row]:
        client = await self._connection.connect()
        try:
            response = await client.rpc(function, params or {}).execute()
        except Exception as e:
            raise AggregationUnavailableError(
                _provider_message(e),
                operation=function,
            ) from e
        if not response.data:
            raise AggregationUnavailableError(
                f"{function} returned no rows",
                operation=function,
            )
        return list(response.data)

    async def all_transactions(self) -> list[Row]:
        return await self._call(self._settings.all_transactions_function)

    async def recent_transactions(self, limit: int) -> list[Row]:
        return await self._call(
            self._settings.recent_transactions_function,
            {"limit_in": limit},
        )

    async def ledger_summary(self) -> Optional[Row]:
        client = await self._connection.connect()
        view = self._settings.summary_view
        try:
            response = await client.table(view).select("*").limit(1).execute()
        except Exception as e:
            raise AggregationUnavailableError(
                _provider_message(e),
                operation=view,
            ) from e
        rows = response.data or []
        return rows[0] if rows else None


class _SupabaseAuthSubscription(AuthSubscription):
    def __init__(self, subscription: Any):
        self._subscription = subscription

    def unsubscribe(self) -> None:
        self._subscription.unsubscribe()


class SupabaseAuthProvider(AuthProviderInterface):
    """Supabase Auth (GoTrue) implementation of the auth provider."""

    def __init__(self, connection: SupabaseConnection):
        self._connection = connection

    async def sign_up(self, email: str, password: str) -> None:
        client = await self._connection.connect()
        try:
            await client.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            raise AuthError(_provider_message(e), operation="sign_up") from e

    async def sign_in(self, email: str, password: str) -> AuthSession:
        client = await self._connection.connect()
        try:
            response = await client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise AuthError(_provider_message(e), operation="sign_in") from e
        session = to_auth_session(response.session)
        if session is None:
            raise AuthError("Sign-in did not return a session", operation="sign_in")
        return session

    async def sign_out(self) -> None:
        client = await self._connection.connect()
        try:
            await client.auth.sign_out()
        except Exception as e:
            raise AuthError(_provider_message(e), operation="sign_out") from e

    async def get_session(self) -> Optional[AuthSession]:
        client = await self._connection.connect()
        try:
            session = await client.auth.get_session()
        except Exception as e:
            raise AuthError(_provider_message(e), operation="get_session") from e
        return to_auth_session(session)

    def on_auth_change(self, callback: AuthCallback) -> AuthSubscription:
        client = self._connection.client

        def _forward(event: Any, session: Any) -> None:
            name = getattr(event, "value", event)
            callback(str(name), to_auth_session(session))

        return _SupabaseAuthSubscription(client.auth.on_auth_state_change(_forward))

    async def update_password(
        self,
        new_password: str,
        recovery: Optional[RecoveryToken] = None,
    ) -> None:
        client = await self._connection.connect()
        try:
            if recovery is not None and recovery.token_hash:
                await client.auth.verify_otp(
                    {"token_hash": recovery.token_hash, "type": "recovery"}
                )
            elif recovery is not None:
                await client.auth.set_session(
                    recovery.access_token,
                    recovery.refresh_token or "",
                )
            await client.auth.update_user({"password": new_password})
        except Exception as e:
            raise AuthError(_provider_message(e), operation="update_password") from e

    async def send_password_reset(self, email: str, redirect_url: str) -> None:
        client = await self._connection.connect()
        try:
            await client.auth.reset_password_for_email(
                email,
                {"redirect_to": redirect_url},
            )
        except Exception as e:
            raise AuthError(_provider_message(e), operation="send_password_reset") from e


def _parse_change_payload(table: str, payload: Any) -> ChangeEvent:
    """Normalize a realtime postgres_changes payload."""
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    event_type = data.get("type") or data.get("eventType") or "*"
    record = data.get("record") or data.get("new") or data.get("old_record") or {}
    return ChangeEvent(
        table=data.get("table") or table,
        event_type=str(getattr(event_type, "value", event_type)),
        record=dict(record),
    )


class SupabaseChangeFeed(ChangeFeedInterface):
    """
    Realtime change notifications over Supabase channels.

    One channel per subscription, listening to every event on each
    watched table in the public schema.
    """

    def __init__(self, connection: SupabaseConnection):
        self._connection = connection

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def _open_channel(
        self,
        name: str,
        tables: Sequence[str],
        callback: ChangeCallback,
    ) -> Any:
        client = await self._connection.connect()
        channel = client.channel(name)
        for table in tables:
            channel.on_postgres_changes(
                "*",
                schema="public",
                table=table,
                callback=lambda payload, table=table: callback(
                    _parse_change_payload(table, payload)
                ),
            )
        await channel.subscribe()
        return channel

    async def subscribe(
        self,
        name: str,
        tables: Sequence[str],
        callback: ChangeCallback,
    ) -> Subscription:
        try:
            channel = await self._open_channel(name, tables, callback)
        except Exception as e:
            raise BackendConnectionError(
                f"Failed to subscribe to {', '.join(tables)}: {_provider_message(e)}",
                operation="subscribe",
            ) from e
        logger.debug("channel_subscribed", channel=name, tables=list(tables))
        return Subscription(name=name, tables=tuple(tables), handle=channel)

    async def release(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        client = await self._connection.connect()
        try:
            await client.remove_channel(subscription.handle)
        except Exception as e:
            raise BackendError(_provider_message(e), operation="release") from e
        logger.debug("channel_released", channel=subscription.name)


async def open_backend(
    connection: Optional[SupabaseConnection] = None,
) -> tuple[
    SupabaseRecordStore,
    SupabaseAggregationService,
    SupabaseAuthProvider,
    SupabaseChangeFeed,
]:
    """Connect once and build all four backend adapters on that client."""
    connection = connection or SupabaseConnection()
    await connection.connect()
    return (
        SupabaseRecordStore(connection),
        SupabaseAggregationService(connection),
        SupabaseAuthProvider(connection),
        SupabaseChangeFeed(connection),
    )
