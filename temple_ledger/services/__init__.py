"""Services package."""

from temple_ledger.services.backend import (
    AggregationServiceInterface,
    AggregationUnavailableError,
    AuthError,
    AuthProviderInterface,
    BackendConnectionError,
    BackendError,
    ChangeEvent,
    ChangeFeedInterface,
    NotFoundError,
    RecordStoreInterface,
    Subscription,
    SupabaseAggregationService,
    SupabaseAuthProvider,
    SupabaseChangeFeed,
    SupabaseConnection,
    SupabaseRecordStore,
    open_backend,
)

__all__ = [
    "AggregationServiceInterface",
    "AggregationUnavailableError",
    "AuthError",
    "AuthProviderInterface",
    "BackendConnectionError",
    "BackendError",
    "ChangeEvent",
    "ChangeFeedInterface",
    "NotFoundError",
    "RecordStoreInterface",
    "Subscription",
    "SupabaseAggregationService",
    "SupabaseAuthProvider",
    "SupabaseChangeFeed",
    "SupabaseConnection",
    "SupabaseRecordStore",
    "open_backend",
]
