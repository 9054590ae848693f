"""
Row Store - Generic table access used by the billing core.

The billing services never build queries themselves. They talk to a RowStore
with five verbs (select, insert, update, upsert, delete) and equality filters,
which keeps the reconciliation logic independent of the database client.

Filters are {column: value} maps. A list/tuple/set value means IN, None means IS NULL.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Boolean, DateTime, Numeric, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError

from services.billing_diff import parse_timestamp
from services.billing_errors import PersistenceError

logger = logging.getLogger(__name__)

_COLLECTION_TYPES = (list, tuple, set, frozenset)


class RowStore:
    """
    Contract for the external row-store collaborator.

    supports_line_item_sort_order is resolved once when the adapter is
    built and tells the save path whether billing_details has sort_order.
    """

    supports_line_item_sort_order = False

    def select(self, table: str, filters: Optional[Dict[str, Any]] = None,
               order_by: Optional[Iterable[str]] = None) -> List[Dict]:
        raise NotImplementedError

    def insert(self, table: str, rows: List[Dict]) -> List[Dict]:
        raise NotImplementedError

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        raise NotImplementedError

    def upsert(self, table: str, rows: List[Dict], conflict_columns: List[str]) -> None:
        raise NotImplementedError

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError


class SQLAlchemyRowStore(RowStore):
    """
    RowStore backed by SQLAlchemy Core tables.

    Each call runs in its own session and commits on success, matching the
    per-request semantics of a hosted database client. Driver errors are
    re-raised as PersistenceError with the driver message unchanged.
    """

    def __init__(self, session_factory, metadata=None, sort_order_capability='auto'):
        if metadata is None:
            from database.connection import Base
            from database import models  # noqa: F401
            metadata = Base.metadata
        self.session_factory = session_factory
        self.metadata = metadata
        self.supports_line_item_sort_order = self._resolve_sort_order_capability(
            sort_order_capability
        )
        # Columns declared on the models but absent from the live schema
        self._hidden_columns = {} if self.supports_line_item_sort_order else {
            'billing_details': {'sort_order'}
        }

    # ------------------------------------------------------------------
    # Capability resolution
    # ------------------------------------------------------------------

    def _resolve_sort_order_capability(self, capability) -> bool:
        if isinstance(capability, bool):
            return capability
        value = str(capability).strip().lower()
        if value in ('true', '1', 'yes'):
            return True
        if value in ('false', '0', 'no'):
            return False

        session = self.session_factory()
        try:
            columns = inspect(session.get_bind()).get_columns('billing_details')
            supported = any(c['name'] == 'sort_order' for c in columns)
        except SQLAlchemyError as e:
            logger.warning(f"Could not inspect billing_details columns, assuming no sort_order: {e}")
            supported = False
        finally:
            session.close()

        logger.info(f"billing_details.sort_order supported: {supported}")
        return supported

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _session(self, operation: str, table: str):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            message = str(getattr(e, 'orig', None) or e)
            logger.error(f"Row store {operation} on {table} failed: {message}")
            raise PersistenceError(message) from e
        finally:
            session.close()

    def _table(self, name: str):
        table = self.metadata.tables.get(name)
        if table is None:
            raise PersistenceError(f"Unknown table: {name}")
        return table

    def _has_column(self, table, name: str) -> bool:
        return name in table.c and name not in self._hidden_columns.get(table.name, ())

    def _select(self, table):
        hidden = self._hidden_columns.get(table.name)
        if not hidden:
            return table.select()
        return select(*[c for c in table.c if c.name not in hidden])

    def _where(self, table, filters: Optional[Dict[str, Any]]):
        clauses = []
        for column_name, value in (filters or {}).items():
            if not self._has_column(table, column_name):
                raise PersistenceError(f"Unknown column {table.name}.{column_name}")
            column = table.c[column_name]
            if isinstance(value, _COLLECTION_TYPES):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    def _coerce(self, table, row: Dict[str, Any]) -> Dict[str, Any]:
        """Drop unknown keys and convert wire values (ISO strings, floats) to column types."""
        clean = {}
        for key, value in row.items():
            if not self._has_column(table, key):
                continue
            column_type = table.c[key].type
            if value is None:
                clean[key] = None
            elif isinstance(column_type, DateTime) and isinstance(value, str):
                clean[key] = parse_timestamp(value, f'{table.name}.{key}')
            elif isinstance(column_type, Numeric) and not isinstance(value, Decimal):
                try:
                    clean[key] = Decimal(str(value))
                except InvalidOperation:
                    raise PersistenceError(f"Invalid numeric value for {table.name}.{key}: {value!r}")
            elif isinstance(column_type, Boolean):
                clean[key] = bool(value)
            else:
                clean[key] = value
        return clean

    def _with_identity(self, table, row: Dict[str, Any]) -> Dict[str, Any]:
        if 'id' in table.c and not row.get('id'):
            row = dict(row, id=str(uuid.uuid4()))
        return row

    def _order(self, table, order_by: Optional[Iterable[str]]):
        ordering = []
        for name in order_by or []:
            descending = name.startswith('-')
            if not self._has_column(table, name.lstrip('-')):
                raise PersistenceError(f"Unknown column {table.name}.{name.lstrip('-')}")
            column = table.c[name.lstrip('-')]
            ordering.append(column.desc() if descending else column.asc())
        return ordering

    @staticmethod
    def _rows(result) -> List[Dict]:
        return [dict(row._mapping) for row in result]

    def _upsert_statement(self, dialect_name: str, table, row: Dict, conflict_columns: List[str]):
        if dialect_name == 'postgresql':
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        elif dialect_name == 'sqlite':
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            return None

        stmt = dialect_insert(table).values(**row)
        update_columns = {
            key: stmt.excluded[key] for key in row
            if key not in conflict_columns and key not in ('id', 'created_at')
        }
        if not update_columns:
            return stmt.on_conflict_do_nothing(index_elements=conflict_columns)
        if 'updated_at' in table.c:
            update_columns['updated_at'] = datetime.utcnow()
        return stmt.on_conflict_do_update(index_elements=conflict_columns, set_=update_columns)

    # ------------------------------------------------------------------
    # RowStore verbs
    # ------------------------------------------------------------------

    def select(self, table: str, filters: Optional[Dict[str, Any]] = None,
               order_by: Optional[Iterable[str]] = None) -> List[Dict]:
        tbl = self._table(table)
        query = self._select(tbl).where(*self._where(tbl, filters))
        ordering = self._order(tbl, order_by)
        if ordering:
            query = query.order_by(*ordering)
        with self._session('select', table) as session:
            return self._rows(session.execute(query))

    def insert(self, table: str, rows: List[Dict]) -> List[Dict]:
        if not rows:
            return []
        tbl = self._table(table)
        prepared = [self._with_identity(tbl, self._coerce(tbl, row)) for row in rows]
        with self._session('insert', table) as session:
            for row in prepared:
                session.execute(tbl.insert().values(**row))
            if 'id' not in tbl.c:
                return prepared
            ids = [row['id'] for row in prepared]
            created = {r['id']: r for r in self._rows(
                session.execute(self._select(tbl).where(tbl.c.id.in_(ids)))
            )}
        logger.debug(f"Inserted {len(prepared)} rows into {table}")
        return [created[i] for i in ids if i in created]

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        tbl = self._table(table)
        values = self._coerce(tbl, patch)
        if not values:
            return 0
        with self._session('update', table) as session:
            result = session.execute(
                tbl.update().where(*self._where(tbl, filters)).values(**values)
            )
            return result.rowcount

    def upsert(self, table: str, rows: List[Dict], conflict_columns: List[str]) -> None:
        if not rows:
            return
        tbl = self._table(table)
        prepared = [self._with_identity(tbl, self._coerce(tbl, row)) for row in rows]
        with self._session('upsert', table) as session:
            dialect_name = session.get_bind().dialect.name
            for row in prepared:
                stmt = self._upsert_statement(dialect_name, tbl, row, conflict_columns)
                if stmt is not None:
                    session.execute(stmt)
                    continue

                # Dialects without ON CONFLICT: look the key up, then update or insert
                key = {c: row.get(c) for c in conflict_columns}
                existing = session.execute(
                    self._select(tbl).where(*self._where(tbl, key))
                ).first()
                if existing is None:
                    session.execute(tbl.insert().values(**self._with_identity(tbl, row)))
                else:
                    patch = {k: v for k, v in row.items()
                             if k not in conflict_columns and k not in ('id', 'created_at')}
                    if patch:
                        session.execute(tbl.update().where(*self._where(tbl, key)).values(**patch))
        logger.debug(f"Upserted {len(prepared)} rows into {table} on {conflict_columns}")

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        if not filters:
            raise ValueError(f"Refusing to delete from {table} without a filter")
        tbl = self._table(table)
        with self._session('delete', table) as session:
            result = session.execute(tbl.delete().where(*self._where(tbl, filters)))
            return result.rowcount

    def ping(self) -> bool:
        with self._session('ping', 'database') as session:
            session.execute(text("SELECT 1")).fetchone()
        return True
