"""
SQL row store — reads the ORM tables in db_models.py through the async
session factory from database.py.

Rows come back as dicts keyed by column name (the Order.meta attribute is
exposed under its column name, "metadata"). Timestamps are returned as
aware UTC datetimes; aware filter values are converted to naive UTC
before they reach SQLite.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from database import async_session
from db_models import TABLE_MODELS, AuthSession
from exceptions import StoreError, StoreUnavailableError
from services.row_store import RowFilter, RowStore

logger = logging.getLogger(__name__)


def _to_db_value(value: Any) -> Any:
    value = getattr(value, "value", value)
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_value(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_dict(instance) -> dict:
    """ORM instance → plain row dict keyed by column name."""
    mapper = instance.__mapper__
    return {
        column.name: _from_db_value(getattr(instance, attr.key))
        for attr in mapper.column_attrs
        for column in attr.columns
    }


class SqlRowStore(RowStore):
    """Row store over the local SQLAlchemy tables."""

    def __init__(self, broker, session_factory=None):
        super().__init__(broker)
        self._session_factory = session_factory or async_session

    def _model(self, table: str):
        model = TABLE_MODELS.get(table)
        if model is None:
            raise StoreError(f"Unknown table: {table}")
        return model

    @staticmethod
    def _column(model, name: str):
        # Attribute keys differ from column names for Order.meta
        for attr in model.__mapper__.column_attrs:
            if attr.key == name or any(c.name == name for c in attr.columns):
                return getattr(model, attr.key)
        raise StoreError(f"Unknown column {name} on {model.__tablename__}")

    def _build_query(self, model, row_filter: Optional[RowFilter]):
        query = select(model)
        if row_filter is None:
            return query
        for col, value in row_filter.eq.items():
            query = query.where(self._column(model, col) == _to_db_value(value))
        for col, values in row_filter.in_.items():
            query = query.where(self._column(model, col).in_([_to_db_value(v) for v in values]))
        for col, values in row_filter.not_in.items():
            query = query.where(self._column(model, col).not_in([_to_db_value(v) for v in values]))
        for col, value in row_filter.gte.items():
            query = query.where(self._column(model, col) >= _to_db_value(value))
        if row_filter.order_by:
            column = self._column(model, row_filter.order_by)
            query = query.order_by(column.desc() if row_filter.descending else column.asc())
        if row_filter.limit is not None:
            query = query.limit(row_filter.limit)
        return query

    async def fetch_rows(self, table: str, row_filter: Optional[RowFilter] = None) -> list[dict]:
        model = self._model(table)
        query = self._build_query(model, row_filter)
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [row_to_dict(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Fetch from {table} failed: {e}") from e

    async def get_session_expiry(self, identity: str) -> Optional[datetime]:
        query = (
            select(AuthSession)
            .where(AuthSession.user_id == identity, AuthSession.is_current == True)  # noqa: E712
            .order_by(AuthSession.created_at.desc())
            .limit(1)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                session = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Session lookup failed: {e}") from e
        if session is None:
            return None
        return _from_db_value(session.expires_at)
