"""
Shared FastAPI dependencies.

Routers import the view registry and mounted-view lookups from here so
tests can override a single dependency.
"""

from __future__ import annotations

from fastapi import Depends, Path

from domain.errors import NotFoundError
from services.view_registry import MountedView, ViewRegistry, get_registry


def registry_dep() -> ViewRegistry:
    return get_registry()


async def get_mounted_view(
    view_id: str = Path(..., min_length=1, max_length=64),
    registry: ViewRegistry = Depends(registry_dep),
) -> MountedView:
    """
    Resolve `{view_id}` to a mounted view.

    Raises:
        NotFoundError: when no view with that id is mounted
    """
    mounted = registry.get(view_id)
    if mounted is None:
        raise NotFoundError("View", view_id)
    return mounted
