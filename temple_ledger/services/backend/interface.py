"""
Abstract Backend Interfaces

DESIGN DECISION: We define abstract interfaces for everything the
hosted backend provides. This allows us to:
1. Keep the ledger logic decoupled from the Supabase client
2. Use in-memory fakes for testing
3. Swap the hosted backend later without touching the ledger code

There are four collaborators:
- Record Store: the `income` and `expenses` tables
- Aggregation Service: optional server-side merged list and totals
- Auth Provider: sign-in, sign-out, sessions and password resets
- Change Feed: realtime notifications of table changes

The interfaces are intentionally thin - we're not building an ORM.
Just the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from temple_ledger.models.session import AuthSession, RecoveryToken


Row = dict[str, Any]


class RecordStoreInterface(ABC):
    """
    Abstract interface for the ledger tables.

    Rows are plain dicts keyed by column name. Every row belongs to a
    user; the backend scopes reads to the signed-in user.
    """

    @abstractmethod
    async def select_rows(
        self,
        table: str,
        columns: str = "*",
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> list[Row]:
        """
        Fetch rows from a table.

        Args:
            table: Table name (`income` or `expenses`)
            columns: Comma-separated column list
            limit: Maximum number of rows, None for all
            newest_first: Order by `date` descending before limiting

        Returns:
            Rows in the order the backend returned them

        Raises:
            BackendError: If the read fails
        """
        pass

    @abstractmethod
    async def insert_row(self, table: str, values: Row) -> Row:
        """
        Insert a new row.

        Returns:
            The inserted row as stored (empty dict if the backend
            does not echo it back)

        Raises:
            BackendError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_row(self, table: str, row_id: Any, values: Row) -> None:
        """
        Update an existing row by id.

        Raises:
            NotFoundError: If no row with that id is visible
            BackendError: If the update fails
        """
        pass

    @abstractmethod
    async def delete_row(self, table: str, row_id: Any) -> None:
        """
        Delete a row by id.

        Raises:
            NotFoundError: If no row with that id is visible
            BackendError: If the delete fails
        """
        pass


class AggregationServiceInterface(ABC):
    """
    Abstract interface for server-side aggregation.

    These endpoints are optional on the backend. Implementations raise
    AggregationUnavailableError when an endpoint is missing or fails;
    callers are expected to fall back to client-side merging.
    """

    @abstractmethod
    async def all_transactions(self) -> list[Row]:
        """
        Unified, date-descending transaction list.

        Rows look like {id, date, type, category, amount, notes}.
        """
        pass

    @abstractmethod
    async def recent_transactions(self, limit: int) -> list[Row]:
        """The `limit` most recent unified transactions."""
        pass

    @abstractmethod
    async def ledger_summary(self) -> Optional[Row]:
        """
        The single totals row {total_income, total_expenses, balance}.

        Returns None if the view has no row.
        """
        pass


class AuthSubscription(ABC):
    """Handle for a registered auth-change listener."""

    @abstractmethod
    def unsubscribe(self) -> None:
        pass


AuthCallback = Callable[[str, Optional[AuthSession]], None]


class AuthProviderInterface(ABC):
    """
    Abstract interface for the authentication provider.

    Errors are raised as AuthError carrying the provider's own message,
    which the UI shows verbatim.
    """

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> None:
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def get_session(self) -> Optional[AuthSession]:
        """The stored session, or None if nobody is signed in."""
        pass

    @abstractmethod
    def on_auth_change(self, callback: AuthCallback) -> AuthSubscription:
        """
        Register a listener for auth state changes.

        The callback receives the provider's event name and the new
        session (None after sign-out).
        """
        pass

    @abstractmethod
    async def update_password(
        self,
        new_password: str,
        recovery: Optional[RecoveryToken] = None,
    ) -> None:
        """
        Change the current user's password.

        Args:
            new_password: The new password
            recovery: Token from a reset link, used to authorize the
                      change when there is no regular session
        """
        pass

    @abstractmethod
    async def send_password_reset(self, email: str, redirect_url: str) -> None:
        pass


class ChangeEvent(BaseModel):
    """A realtime notification about one row of one table."""
    model_config = ConfigDict(frozen=True)

    table: str
    event_type: str = Field(
        ...,
        description="INSERT, UPDATE or DELETE"
    )
    record: dict[str, Any] = Field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription(BaseModel):
    """A live change-feed subscription; release it when the view goes away."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    tables: tuple[str, ...]
    handle: Any = None
    active: bool = True


class ChangeFeedInterface(ABC):
    """Abstract interface for realtime table-change notifications."""

    @abstractmethod
    async def subscribe(
        self,
        name: str,
        tables: Sequence[str],
        callback: ChangeCallback,
    ) -> Subscription:
        """
        Watch inserts, updates and deletes on `tables`.

        The callback is invoked from the event loop for every change.
        """
        pass

    @abstractmethod
    async def release(self, subscription: Subscription) -> None:
        """Stop delivering notifications for a subscription."""
        pass


class BackendError(Exception):
    """Base exception for backend operations. The message is user-facing."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        super().__init__(message)


class NotFoundError(BackendError):
    """No visible row has the requested id."""
    pass


class AuthError(BackendError):
    """The auth provider rejected a request."""
    pass


class AggregationUnavailableError(BackendError):
    """A server-side aggregation endpoint is missing, failing or empty."""
    pass


class BackendConnectionError(BackendError):
    """Could not connect to the backend."""
    pass
