"""
Activity Models for Temple Ledger

Every change to the ledger and every authentication step is described
by an ActivityEvent and written to the structured log. This gives:
1. A trail of who added, edited or removed which row
2. Debugging information when the backend misbehaves
3. Visibility into how often the client-side fallback is used
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ActivityEventType(str, Enum):
    """Types of events we record."""
    # Authentication
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"
    USER_REGISTERED = "user_registered"
    AUTH_STATE_CHANGED = "auth_state_changed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"

    # Navigation
    VIEW_CHANGED = "view_changed"

    # Ledger changes
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Degraded mode
    AGGREGATION_FALLBACK = "aggregation_fallback"

    # Failures
    BACKEND_ERROR = "backend_error"


class ActivitySeverity(str, Enum):
    """Severity level for activity events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActivityEvent(BaseModel):
    """A single recorded event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )
    event_type: ActivityEventType
    severity: ActivitySeverity = ActivitySeverity.INFO

    # What the event is about
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g. 'income', 'expenses', 'session')"
    )
    entity_id: Optional[str] = None
    user_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.signed_in(user_id, email)
        event = ActivityEventBuilder.transaction_deleted("income", 12, user_id)
    """

    @staticmethod
    def signed_in(user_id: str, email: Optional[str]) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.USER_SIGNED_IN,
            entity_type="session",
            user_id=user_id,
            description=f"User signed in: {email or user_id}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def signed_out(user_id: Optional[str]) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.USER_SIGNED_OUT,
            entity_type="session",
            user_id=user_id,
            description="User signed out",
            is_user_action=True,
        )

    @staticmethod
    def registered(email: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.USER_REGISTERED,
            entity_type="session",
            description=f"Registration submitted for {email}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def auth_state_changed(event: str, user_id: Optional[str]) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.AUTH_STATE_CHANGED,
            severity=ActivitySeverity.DEBUG,
            entity_type="session",
            user_id=user_id,
            description=f"Auth state changed: {event}",
            details={"provider_event": event, "has_session": user_id is not None},
        )

    @staticmethod
    def password_reset_requested(email: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.PASSWORD_RESET_REQUESTED,
            entity_type="session",
            description=f"Password reset email requested for {email}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def password_reset_completed() -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.PASSWORD_RESET_COMPLETED,
            entity_type="session",
            description="Password changed through recovery link",
            is_user_action=True,
        )

    @staticmethod
    def view_changed(previous: str, current: str, trigger: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.VIEW_CHANGED,
            severity=ActivitySeverity.DEBUG,
            description=f"View {previous} -> {current}",
            details={"from": previous, "to": current, "trigger": trigger},
        )

    @staticmethod
    def transaction_created(
        table: str,
        user_id: str,
        amount: str,
        label: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.TRANSACTION_CREATED,
            entity_type=table,
            user_id=user_id,
            description=f"Added to {table}: {label} - ₹{amount}",
            details={"amount": amount, "label": label},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(table: str, row_id: Any, amount: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.TRANSACTION_UPDATED,
            entity_type=table,
            entity_id=str(row_id),
            description=f"Updated {table} row {row_id}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(table: str, row_id: Any) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.TRANSACTION_DELETED,
            entity_type=table,
            entity_id=str(row_id),
            description=f"Deleted {table} row {row_id}",
            is_user_action=True,
        )

    @staticmethod
    def aggregation_fallback(endpoint: str, reason: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.AGGREGATION_FALLBACK,
            severity=ActivitySeverity.WARNING,
            description=f"Server aggregation '{endpoint}' unavailable, merging client-side",
            details={"endpoint": endpoint, "reason": reason},
        )

    @staticmethod
    def backend_error(operation: str, error_message: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.BACKEND_ERROR,
            severity=ActivitySeverity.ERROR,
            description=f"Backend call failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
