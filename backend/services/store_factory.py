"""
Process-wide row store + broker, built lazily from settings.STORE_BACKEND.
"""
import logging
from typing import Optional

from config import settings
from services.change_broker import ChangeBroker
from services.row_store import RowStore

logger = logging.getLogger(__name__)

_broker: Optional[ChangeBroker] = None
_store: Optional[RowStore] = None


def get_broker() -> ChangeBroker:
    global _broker
    if _broker is None:
        _broker = ChangeBroker()
    return _broker


def get_store() -> RowStore:
    """Return the configured row store, creating it on first use."""
    global _store
    if _store is None:
        if settings.store_backend == "rest":
            from services.rest_store import RestRowStore
            _store = RestRowStore(get_broker())
        else:
            from services.sql_store import SqlRowStore
            _store = SqlRowStore(get_broker())
        logger.info(f"Row store ready: {type(_store).__name__}")
    return _store


def set_store(store: RowStore) -> None:
    """Install a specific store (tests, alternate backends)."""
    global _store, _broker
    _store = store
    _broker = store.broker


async def reset_store() -> None:
    """Close and forget the current store and broker."""
    global _store, _broker
    if _store is not None:
        await _store.close()
    _store = None
    _broker = None
