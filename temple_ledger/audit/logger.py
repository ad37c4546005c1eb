"""
Activity Logger

DESIGN DECISION: Every change to the ledger and every authentication
step is logged as a structured event. This provides:
1. Traceability of who changed which row
2. Debugging capability when the backend misbehaves
3. A record of how often the client-side fallback kicks in

The activity logger:
- Keeps the most recent events in memory for the settings screen
- Logs at the event's own severity
- Only logs locally; the ledger tables are the system of record
"""

import logging
import threading
from collections import deque
from typing import Optional

import structlog

from temple_ledger.models.activity import ActivityEvent, ActivitySeverity


_CONFIGURED = False


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog once for the whole process."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


class ActivityLogger:
    """Central activity logging service."""

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("temple_ledger.activity")
        self.events: deque[ActivityEvent] = deque(maxlen=500)
        # Appended from the event-loop thread, read from the UI thread
        self._lock = threading.Lock()

    def log(self, event: ActivityEvent) -> None:
        """Log an activity event at its severity and keep the latest in memory."""
        with self._lock:
            self.events.append(event)
        log_dict = event.to_log_dict()

        if event.severity == ActivitySeverity.ERROR:
            self._logger.error("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.WARNING:
            self._logger.warning("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.DEBUG:
            self._logger.debug("activity_event", **log_dict)
        else:
            self._logger.info("activity_event", **log_dict)

    def recent(self, limit: int = 50) -> list[ActivityEvent]:
        """Most recent events first."""
        with self._lock:
            snapshot = list(self.events)
        return snapshot[::-1][:limit]
