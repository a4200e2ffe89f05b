"""
Health check and change-feed status endpoints.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

import database
from config import settings
from services import feed_poller
from services.view_registry import get_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check — verifies database connectivity."""
    try:
        await database.ping()
        return {
            "status": "healthy",
            "database_connected": True,
            "store_backend": settings.store_backend,
            "feed_running": feed_poller.get_status().get("running", False),
            "mounted_views": len(get_registry()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database_connected": False,
                "error": str(e),
            },
        )


@router.get("/feed/status", tags=["feed"])
async def get_feed_status():
    """Current status of the change-feed poller."""
    return feed_poller.get_status()
