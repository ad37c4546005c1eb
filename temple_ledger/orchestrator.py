"""
Main Orchestrator for Temple Ledger

Ties the components together for one browser session:
- Session/View Controller decides the screen
- Dashboard and History live views show the ledger
- Transaction Editor writes to it

DESIGN DECISION: Only the live view of the screen currently showing is
mounted. Switching screens (or signing out) releases the previous
view's change subscription before the next one subscribes, so no
listener outlives its screen.
"""

import asyncio
import concurrent.futures
import weakref
from dataclasses import dataclass, field
from typing import Optional

import structlog

from temple_ledger.audit import ActivityLogger, configure_logging
from temple_ledger.config import get_settings
from temple_ledger.ledger import (
    DashboardView,
    HistoryView,
    LiveView,
    TransactionEditor,
    TransactionReconciler,
)
from temple_ledger.models.session import View
from temple_ledger.services.backend import (
    AggregationServiceInterface,
    AuthProviderInterface,
    ChangeFeedInterface,
    RecordStoreInterface,
    SupabaseConnection,
    open_backend,
)
from temple_ledger.session import SessionController


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything one browser session needs."""

    controller: SessionController
    reconciler: TransactionReconciler
    editor: TransactionEditor
    dashboard: DashboardView
    history: HistoryView
    activity: ActivityLogger
    mounted: Optional[View] = field(default=None)

    def live_view_for(self, view: View) -> Optional[LiveView]:
        if view == View.DASHBOARD:
            return self.dashboard
        if view == View.HISTORY:
            return self.history
        return None

    async def sync_views(self) -> Optional[LiveView]:
        """
        Mount the live view of the current screen, unmounting the old one.

        Returns:
            The mounted live view, or None on screens without one
        """
        current = self.controller.view
        if current == self.mounted:
            return self.live_view_for(current)

        previous = self.live_view_for(self.mounted) if self.mounted else None
        if previous is not None:
            await previous.unmount()

        live_view = self.live_view_for(current)
        if live_view is not None:
            await live_view.mount()
        self.mounted = current
        return live_view

    async def shutdown(self) -> None:
        """Release every subscription held by this session."""
        await _release(self.dashboard, self.history, self.controller)
        self.mounted = None

    def release_when_collected(self, loop: asyncio.AbstractEventLoop) -> weakref.finalize:
        """
        Schedule shutdown on `loop` once these components are garbage-collected.

        For front ends that drop a session's components without any
        teardown hook (e.g. a closed browser tab). The finalizer holds the
        views and controller, never the components themselves.
        """
        return weakref.finalize(
            self,
            _schedule_release,
            loop,
            self.dashboard,
            self.history,
            self.controller,
        )


async def _release(
    dashboard: DashboardView,
    history: HistoryView,
    controller: SessionController,
) -> None:
    try:
        for live_view in (dashboard, history):
            await live_view.unmount()
    finally:
        controller.close()


def _schedule_release(
    loop: asyncio.AbstractEventLoop,
    dashboard: DashboardView,
    history: HistoryView,
    controller: SessionController,
) -> Optional[concurrent.futures.Future]:
    if loop.is_closed():
        return None
    logger.info("session_components_released")
    return asyncio.run_coroutine_threadsafe(_release(dashboard, history, controller), loop)


def build_components(
    store: RecordStoreInterface,
    auth: AuthProviderInterface,
    aggregation: Optional[AggregationServiceInterface] = None,
    change_feed: Optional[ChangeFeedInterface] = None,
    activity: Optional[ActivityLogger] = None,
) -> AppComponents:
    """Wire the ledger components on top of any backend implementation."""
    activity = activity or ActivityLogger()
    reconciler = TransactionReconciler(store, aggregation, activity=activity)
    return AppComponents(
        controller=SessionController(auth, activity=activity),
        reconciler=reconciler,
        editor=TransactionEditor(store, auth, activity=activity),
        dashboard=DashboardView(reconciler, change_feed),
        history=HistoryView(reconciler, change_feed),
        activity=activity,
    )


async def create_app_components(
    connection: Optional[SupabaseConnection] = None,
) -> AppComponents:
    """
    Factory function to create all application components on Supabase.

    Args:
        connection: An existing connection to reuse; a new client is
                    created when omitted.
    """
    configure_logging(get_settings().app.log_level)
    store, aggregation, auth, change_feed = await open_backend(connection)
    return build_components(
        store=store,
        auth=auth,
        aggregation=aggregation,
        change_feed=change_feed,
    )
