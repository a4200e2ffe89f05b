"""
Live view endpoints — mount, read, re-scope and unmount live views.

Each mounted view is scoped to one identity and keeps reconciling its
snapshot against the change feed until it is unmounted. Notifications the
view dispatches are buffered per view and read through /notifications.
"""
import logging

from fastapi import APIRouter, Depends, Query, status

from config import settings
from deps import get_mounted_view, registry_dep
from domain.errors import ValidationError
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from models import MountViewRequest, NotificationOut, SwitchIdentityRequest, serialize_state
from services.view_registry import MountedView, ViewRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["views"])


def _view_payload(mounted: MountedView) -> dict:
    return {
        "viewId": mounted.view_id,
        "state": serialize_state(mounted.view.state()),
    }


@router.post("/views", status_code=status.HTTP_201_CREATED)
async def mount_view(
    body: MountViewRequest,
    registry: ViewRegistry = Depends(registry_dep),
    _=Depends(rate_limit(settings.view_mount_rate_limit, 60)),
):
    """
    Mount a live view for an identity.

    Loads the snapshot (or the demo dataset when the store has none for
    this identity), then subscribes to the change feed.
    """
    if body.kind != "tracking" and (body.order_id or body.order_kind):
        raise ValidationError("orderId/orderKind only apply to tracking views", field="kind")
    try:
        mounted = await registry.mount(
            body.kind,
            body.identity,
            order_id=body.order_id,
            order_kind=body.order_kind.value if body.order_kind else None,
        )
    except ValueError as e:
        raise ValidationError(str(e), field="kind")

    return success_response(_view_payload(mounted), meta={"pending": len(mounted.inbox)})


@router.get("/views/{view_id}")
async def get_view(mounted: MountedView = Depends(get_mounted_view)):
    """Current state of a mounted view."""
    return success_response(_view_payload(mounted), meta={"pending": len(mounted.inbox)})


@router.put("/views/{view_id}/identity")
async def switch_identity(
    body: SwitchIdentityRequest,
    mounted: MountedView = Depends(get_mounted_view),
    registry: ViewRegistry = Depends(registry_dep),
):
    """
    Re-scope a view to another identity.

    The previous identity's channels, trackers and buffered notifications
    are discarded before the new snapshot loads.
    """
    await registry.switch_identity(mounted.view_id, body.identity)
    return success_response(_view_payload(mounted))


@router.get("/views/{view_id}/notifications")
async def get_notifications(
    drain: bool = Query(True, description="Clear the buffer after reading"),
    mounted: MountedView = Depends(get_mounted_view),
):
    """Notifications dispatched by the view since the last drain."""
    items = mounted.inbox.drain() if drain else mounted.inbox.pending()
    data = [
        NotificationOut.model_validate(n).model_dump(by_alias=True, mode="json")
        for n in items
    ]
    return success_response(data, meta={"count": len(data), "drained": drain})


@router.delete("/views/{view_id}")
async def unmount_view(
    mounted: MountedView = Depends(get_mounted_view),
    registry: ViewRegistry = Depends(registry_dep),
):
    """Unmount a view: close its channels and drop its state."""
    await registry.unmount(mounted.view_id)
    return success_response({"viewId": mounted.view_id, "unmounted": True})
