"""Data-access session executing generated statements.

Rows are returned as dicts keyed by lower-case column label. Every public
method joins the transaction opened by :meth:`DataSession.transaction` when
one is active, otherwise it runs in its own short transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from sqlalchemy import Connection, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import Executable

from entitygraph.core.connection import DatabaseConnection
from entitygraph.core.types import EntityFilter, ScalarQuery
from entitygraph.exceptions import ConcurrencyConflictError, QueryError
from entitygraph.metadata.descriptors import EntityMetadata
from entitygraph.storage.statements import StatementBuilder

logger = logging.getLogger(__name__)


def _normalize(row: Any) -> dict[str, Any]:
    return {str(key).lower(): value for key, value in row.items()}


class DataSession:
    """Runs entity statements and ad hoc SQL against one database."""

    def __init__(self, connection: DatabaseConnection, statements: StatementBuilder) -> None:
        self.connection = connection
        self.statements = statements
        self._active: ContextVar[Connection | None] = ContextVar(
            f"entitygraph_connection_{id(self)}", default=None
        )

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Share one connection and transaction with every call in the block.

        Nested use joins the outer transaction. The outermost block commits
        on success and rolls back on any exception.
        """
        active = self._active.get()
        if active is not None:
            yield active
            return
        with self.connection.begin() as conn:
            token = self._active.set(conn)
            try:
                yield conn
            finally:
                self._active.reset(token)

    @property
    def in_transaction(self) -> bool:
        return self._active.get() is not None

    def _execute(
        self,
        stmt: Executable,
        params: dict[str, Any] | None,
        operation: str,
        entity_type: str | None = None,
    ) -> tuple[int, list[dict[str, Any]], Any]:
        """Execute and return the row count, the rows and any generated key."""
        try:
            with self.transaction() as conn:
                result = conn.execute(stmt, params or {})
                generated = result.inserted_primary_key if operation == "insert" else None
                rows = []
                if result.returns_rows:
                    rows = [_normalize(r) for r in result.mappings().all()]
                return result.rowcount, rows, generated
        except SQLAlchemyError as e:
            target = f" on {entity_type}" if entity_type else ""
            raise QueryError(f"{operation}{target} failed: {e}", entity_type, operation) from e

    def insert(self, entity: Any) -> int:
        """Insert the entity and copy a generated id back onto it."""
        meta: EntityMetadata = entity.entity_metadata()
        rowcount, _, generated = self._execute(
            self.statements.insert(entity), None, "insert", meta.type_name
        )
        id_columns = meta.id_columns
        if generated is not None:
            for column, value in zip(id_columns, generated, strict=False):
                if entity.get_field(column) is None and value is not None:
                    entity.set_field(column, value)
        logger.debug(f"Inserted {meta.type_name} {entity.entity_id}")
        return rowcount

    def update(self, entity: Any) -> int:
        """Update the entity by id.

        Raises:
            ConcurrencyConflictError: If a versioned row was changed or
                removed since it was loaded
        """
        meta: EntityMetadata = entity.entity_metadata()
        stmt = self.statements.update(entity)
        if stmt is None:
            logger.debug(f"Nothing to update on {meta.type_name} {entity.entity_id}")
            return 1
        rowcount, _, _ = self._execute(stmt, None, "update", meta.type_name)
        self._check_version(entity, meta, rowcount)
        logger.debug(f"Updated {meta.type_name} {entity.entity_id}")
        return rowcount

    def delete(self, entity: Any) -> int:
        meta: EntityMetadata = entity.entity_metadata()
        rowcount, _, _ = self._execute(
            self.statements.delete(entity), None, "delete", meta.type_name
        )
        self._check_version(entity, meta, rowcount)
        logger.debug(f"Deleted {meta.type_name} {entity.entity_id}")
        return rowcount

    @staticmethod
    def _check_version(entity: Any, meta: EntityMetadata, rowcount: int) -> None:
        version = meta.version_column
        if version is not None and rowcount == 0:
            raise ConcurrencyConflictError(
                meta.type_name, entity.entity_id, entity.get_field(version)
            )

    def query_rows(self, meta: EntityMetadata, entity_filter: EntityFilter) -> list[dict[str, Any]]:
        stmt = self.statements.select(meta, entity_filter)
        _, rows, _ = self._execute(stmt, entity_filter.params, "select", meta.type_name)
        return rows

    def query_row(self, meta: EntityMetadata, entity_filter: EntityFilter) -> dict[str, Any] | None:
        rows = self.query_rows(meta, entity_filter)
        return rows[0] if rows else None

    def query_scalar(self, query: ScalarQuery) -> Any:
        values = self.query_scalar_list(query)
        return values[0] if values else None

    def query_scalar_list(self, query: ScalarQuery) -> list[Any]:
        _, rows, _ = self._execute(self.statements.scalar(query), query.params, "scalar")
        return [next(iter(row.values())) for row in rows]

    def child_ids(
        self, table_name: str, id_column: str, parent_column: str, parent_id: Any
    ) -> list[Any]:
        stmt = self.statements.child_id_list(table_name, id_column, parent_column)
        _, rows, _ = self._execute(stmt, {"parent_id": parent_id}, "select child ids", table_name)
        return [next(iter(row.values())) for row in rows]

    def execute_sql(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a raw statement and return any rows it produces."""
        _, rows, _ = self._execute(text(sql), params, "execute")
        return rows

    def bulk_update(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a raw data-changing statement and return the affected row count."""
        rowcount, _, _ = self._execute(text(sql), params, "bulk update")
        return rowcount
