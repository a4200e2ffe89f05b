"""
View registry — the live views mounted through the HTTP surface.

Each mounted view gets an id, its own notification inbox (a bounded
CollectingSink, mirrored to the log) and its own trackers. The registry is
process-wide; the views it holds are not shared between identities.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from config import settings
from domain.enums import OrderKind
from services.dashboard_view import DashboardView
from services.history_view import HistoryView
from services.lifecycle import LiveView
from services.notifications import CollectingSink, FanoutSink, LoggingSink
from services.rider_view import RiderView
from services.row_store import RowStore
from services.security_view import SecurityView
from services.store_factory import get_store
from services.tracking_view import TrackingView

logger = logging.getLogger(__name__)

VIEW_KINDS: dict[str, type[LiveView]] = {
    "rider": RiderView,
    "tracking": TrackingView,
    "dashboard": DashboardView,
    "history": HistoryView,
    "security": SecurityView,
}


@dataclass
class MountedView:
    view_id: str
    view: LiveView
    inbox: CollectingSink


class ViewRegistry:
    def __init__(self, store_provider: Callable[[], RowStore] = get_store):
        self._store_provider = store_provider
        self._views: dict[str, MountedView] = {}

    def _build(self, kind: str, inbox: CollectingSink, order_id=None, order_kind=None) -> LiveView:
        view_cls = VIEW_KINDS.get(kind)
        if view_cls is None:
            raise ValueError(f"Unknown view kind: {kind}")
        sink = FanoutSink(inbox, LoggingSink(kind))
        store = self._store_provider()
        if view_cls is TrackingView:
            return TrackingView(
                store,
                order_id=order_id,
                order_kind=OrderKind(order_kind) if order_kind else OrderKind.FOOD,
                sink=sink,
            )
        return view_cls(store, sink=sink)

    async def mount(
        self,
        kind: str,
        identity: str,
        order_id: Optional[str] = None,
        order_kind: Optional[str] = None,
    ) -> MountedView:
        """
        Create and mount a view.

        Args:
            kind: One of VIEW_KINDS
            identity: Signed-in user (or rider) the view is scoped to
            order_id: Tracking only; follow this order
            order_kind: Tracking only; kind of the latest order to follow

        Returns:
            MountedView with the new view id
        """
        inbox = CollectingSink(settings.notification_buffer_size)
        view = self._build(kind, inbox, order_id=order_id, order_kind=order_kind)
        await view.mount(identity)
        mounted = MountedView(view_id=uuid.uuid4().hex, view=view, inbox=inbox)
        self._views[mounted.view_id] = mounted
        logger.info(f"View {mounted.view_id} mounted ({kind} for {identity})")
        return mounted

    def get(self, view_id: str) -> Optional[MountedView]:
        return self._views.get(view_id)

    async def switch_identity(self, view_id: str, identity: str) -> Optional[MountedView]:
        mounted = self._views.get(view_id)
        if mounted is None:
            return None
        mounted.inbox.drain()
        await mounted.view.switch_identity(identity)
        return mounted

    async def unmount(self, view_id: str) -> bool:
        mounted = self._views.pop(view_id, None)
        if mounted is None:
            return False
        await mounted.view.unmount()
        logger.info(f"View {view_id} unmounted")
        return True

    async def shutdown(self) -> None:
        for view_id in list(self._views):
            await self.unmount(view_id)

    def __len__(self) -> int:
        return len(self._views)


_registry: Optional[ViewRegistry] = None


def get_registry() -> ViewRegistry:
    global _registry
    if _registry is None:
        _registry = ViewRegistry()
    return _registry


def reset_registry() -> None:
    global _registry
    _registry = None
