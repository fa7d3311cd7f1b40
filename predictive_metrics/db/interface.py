# predictive_metrics/db/interface.py
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from predictive_metrics.exceptions import DatabaseError
from predictive_metrics.models import Base

OrderBy = Optional[Union[str, List[str]]]


class DatabaseInterface(ABC):
    """Abstract async database interface for the supported backends.

    Filters are equality matches; a list value matches any of its items and
    a None value matches NULL.
    """

    @abstractmethod
    async def query(
        self,
        table_name: str,
        filters: Dict[str, Any] = None,
        order_by: OrderBy = None,
        descending: bool = False,
        limit: int = None
    ) -> List[Dict[str, Any]]:
        """Query rows from a table."""
        pass

    @abstractmethod
    async def insert(self, table_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored."""
        pass

    @abstractmethod
    async def update(self, table_name: str, data: Dict[str, Any], filters: Dict[str, Any]) -> int:
        """Update matching rows and return how many changed."""
        pass

    @abstractmethod
    async def delete(
        self,
        table_name: str,
        filters: Dict[str, Any] = None,
        less_than: Dict[str, Any] = None,
        exclude: Dict[str, Any] = None
    ) -> int:
        """Delete matching rows and return how many were removed.

        Args:
            table_name: Table name
            filters: Equality filters
            less_than: Column upper bounds (exclusive)
            exclude: Column values that must not match
        """
        pass


def _as_list(order_by: OrderBy) -> List[str]:
    if not order_by:
        return []
    if isinstance(order_by, str):
        return [order_by]
    return list(order_by)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class SupabaseInterface(DatabaseInterface):
    """Supabase interface implementation over the async client."""

    def __init__(self, client):
        """Initialize with an async Supabase client."""
        self.client = client

    def _serialize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {key: _serialize_value(value) for key, value in data.items()}

    def _apply_filters(self, query, filters=None, less_than=None, exclude=None):
        for key, value in (filters or {}).items():
            if value is None:
                query = query.is_(key, 'null')
            elif isinstance(value, list):
                query = query.in_(key, [_serialize_value(item) for item in value])
            else:
                query = query.eq(key, _serialize_value(value))

        for key, value in (less_than or {}).items():
            query = query.lt(key, _serialize_value(value))

        for key, value in (exclude or {}).items():
            query = query.neq(key, _serialize_value(value))

        return query

    async def _execute(self, query, action: str, table_name: str):
        try:
            result = await query.execute()
        except Exception as e:
            raise DatabaseError(f"Supabase {action} error on {table_name}: {str(e)}")

        if hasattr(result, 'error') and result.error:
            raise DatabaseError(f"Supabase {action} error on {table_name}: {result.error}")

        return result.data or []

    async def query(self, table_name, filters=None, order_by=None, descending=False, limit=None):
        """Query data from a table using Supabase."""
        query = self._apply_filters(self.client.table(table_name).select('*'), filters)

        for column in _as_list(order_by):
            query = query.order(column, desc=descending)

        if limit:
            query = query.limit(limit)

        return await self._execute(query, 'query', table_name)

    async def insert(self, table_name, data):
        """Insert data into a table using Supabase."""
        query = self.client.table(table_name).insert(self._serialize(data))
        rows = await self._execute(query, 'insert', table_name)
        return rows[0] if rows else {}

    async def update(self, table_name, data, filters):
        """Update data in a table using Supabase."""
        query = self._apply_filters(self.client.table(table_name).update(self._serialize(data)), filters)
        rows = await self._execute(query, 'update', table_name)
        return len(rows)

    async def delete(self, table_name, filters=None, less_than=None, exclude=None):
        """Delete data from a table using Supabase."""
        query = self._apply_filters(self.client.table(table_name).delete(), filters, less_than, exclude)
        rows = await self._execute(query, 'delete', table_name)
        return len(rows)


class SQLAlchemyInterface(DatabaseInterface):
    """SQL interface over an async SQLAlchemy engine (PostgreSQL or SQLite)."""

    def __init__(self, engine):
        """Initialize with an AsyncEngine."""
        self.engine = engine

    def _table(self, table_name: str):
        table = Base.metadata.tables.get(table_name)
        if table is None:
            raise DatabaseError(f"Unknown table: {table_name}")
        return table

    def _column(self, table, key: str):
        try:
            return table.c[key]
        except KeyError:
            raise DatabaseError(f"Unknown column {key} on {table.name}")

    def _apply_filters(self, statement, table, filters=None, less_than=None, exclude=None):
        for key, value in (filters or {}).items():
            column = self._column(table, key)
            if value is None:
                statement = statement.where(column.is_(None))
            elif isinstance(value, list):
                statement = statement.where(column.in_(value))
            else:
                statement = statement.where(column == value)

        for key, value in (less_than or {}).items():
            statement = statement.where(self._column(table, key) < value)

        for key, value in (exclude or {}).items():
            statement = statement.where(self._column(table, key) != value)

        return statement

    async def query(self, table_name, filters=None, order_by=None, descending=False, limit=None):
        """Query data from a table using SQLAlchemy Core."""
        table = self._table(table_name)
        statement = self._apply_filters(select(table), table, filters)

        for key in _as_list(order_by):
            column = self._column(table, key)
            statement = statement.order_by(column.desc() if descending else column.asc())

        if limit:
            statement = statement.limit(limit)

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement)
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise DatabaseError(f"SQL query error on {table_name}: {str(e)}")

    async def insert(self, table_name, data):
        """Insert data into a table and read the stored row back."""
        table = self._table(table_name)
        primary_key = list(table.primary_key.columns)[0]

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(insert(table).values(**data))
                inserted = result.inserted_primary_key
                if not inserted or inserted[0] is None:
                    return dict(data)

                stored = await conn.execute(select(table).where(primary_key == inserted[0]))
                row = stored.mappings().first()
                return dict(row) if row else dict(data)
        except SQLAlchemyError as e:
            raise DatabaseError(f"SQL insert error on {table_name}: {str(e)}")

    async def update(self, table_name, data, filters):
        """Update data in a table using SQLAlchemy Core."""
        table = self._table(table_name)
        statement = self._apply_filters(update(table).values(**data), table, filters)

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement)
                return result.rowcount
        except SQLAlchemyError as e:
            raise DatabaseError(f"SQL update error on {table_name}: {str(e)}")

    async def delete(self, table_name, filters=None, less_than=None, exclude=None):
        """Delete data from a table using SQLAlchemy Core."""
        table = self._table(table_name)
        statement = self._apply_filters(delete(table), table, filters, less_than, exclude)

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement)
                return result.rowcount
        except SQLAlchemyError as e:
            raise DatabaseError(f"SQL delete error on {table_name}: {str(e)}")
