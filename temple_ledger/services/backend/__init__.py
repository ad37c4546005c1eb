"""
Backend Services Package

Provides abstract interfaces and concrete implementations for the hosted
backend. Currently implements Supabase, but designed to be swappable.
"""

from temple_ledger.services.backend.interface import (
    AggregationServiceInterface,
    AggregationUnavailableError,
    AuthError,
    AuthProviderInterface,
    AuthSubscription,
    BackendConnectionError,
    BackendError,
    ChangeEvent,
    ChangeFeedInterface,
    NotFoundError,
    RecordStoreInterface,
    Subscription,
)
from temple_ledger.services.backend.supabase_backend import (
    SupabaseAggregationService,
    SupabaseAuthProvider,
    SupabaseChangeFeed,
    SupabaseConnection,
    SupabaseRecordStore,
    open_backend,
)

__all__ = [
    # Interfaces
    "AggregationServiceInterface",
    "AuthProviderInterface",
    "AuthSubscription",
    "ChangeFeedInterface",
    "RecordStoreInterface",
    # Values
    "ChangeEvent",
    "Subscription",
    # Exceptions
    "AggregationUnavailableError",
    "AuthError",
    "BackendConnectionError",
    "BackendError",
    "NotFoundError",
    # Supabase implementation
    "SupabaseAggregationService",
    "SupabaseAuthProvider",
    "SupabaseChangeFeed",
    "SupabaseConnection",
    "SupabaseRecordStore",
    "open_backend",
]
