"""SQL statement generation from entity metadata."""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    Delete,
    Insert,
    String,
    Update,
    and_,
    func,
    literal,
    select,
    text,
)
from sqlalchemy import Table as SATable
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import Executable

from entitygraph.config import EngineSettings
from entitygraph.core.types import EntityFilter, ScalarQuery
from entitygraph.metadata.descriptors import ColumnDescriptor, EntityMetadata
from entitygraph.security.clearance import AccessEvaluator
from entitygraph.storage.tables import TableFactory


class StatementBuilder:
    """Builds SELECT, INSERT, UPDATE and DELETE statements for entities.

    Column eligibility for writes is delegated to the access evaluator so
    redacted fields and security columns are handled in one place.
    """

    def __init__(
        self,
        tables: TableFactory,
        evaluator: AccessEvaluator,
        settings: EngineSettings | None = None,
    ) -> None:
        self.tables = tables
        self.evaluator = evaluator
        self.settings = settings or EngineSettings()

    def _select_column(
        self, table: SATable, column: ColumnDescriptor, locale: str | None
    ) -> ColumnElement[Any]:
        col = table.c[column.column_name]
        expr: ColumnElement[Any] = col
        if column.on_select:
            expr = getattr(func, column.on_select)(expr, type_=col.type)
        if column.localized:
            translate = getattr(func, self.settings.translation_function)
            expr = translate(expr, literal(locale, String()), type_=col.type)
        return expr.label(column.column_name)

    def _write_value(self, table: SATable, column: ColumnDescriptor, value: Any) -> Any:
        if column.on_change:
            return getattr(func, column.on_change)(literal(value, table.c[column.column_name].type))
        return value

    def _id_clause(self, table: SATable, entity: Any) -> ColumnElement[bool]:
        meta = entity.entity_metadata()
        return and_(
            *[table.c[c.column_name] == entity.get_field(c) for c in meta.id_columns]
        )

    def select(self, meta: EntityMetadata, entity_filter: EntityFilter) -> Executable:
        """SELECT every mapped column, constrained by the filter."""
        if entity_filter.sql:
            return text(entity_filter.sql)
        table = self.tables.table_for(meta.entity_type)
        columns = [self._select_column(table, c, entity_filter.locale) for c in meta.columns]
        stmt = select(*columns).select_from(table)
        if entity_filter.where:
            stmt = stmt.where(text(entity_filter.where))
        order_by = entity_filter.order_by or meta.sort_expression
        if order_by:
            stmt = stmt.order_by(text(order_by))
        if entity_filter.limit:
            stmt = stmt.limit(entity_filter.limit)
        return stmt

    def insert(self, entity: Any) -> Insert:
        """INSERT the entity's non-null insertable columns.

        Leaving out a column flags the entity for refresh after the write so
        storage defaults are picked up.
        """
        meta: EntityMetadata = entity.entity_metadata()
        table = self.tables.table_for(meta.entity_type)
        values: dict[str, Any] = {}
        for column in meta.columns:
            if column.is_version:
                values[column.column_name] = (entity.get_field(column) or 0) + 1
            elif self.evaluator.is_insertable(entity, column):
                values[column.column_name] = self._write_value(
                    table, column, entity.get_field(column)
                )
            else:
                entity.set_force_refresh(True)
        return table.insert().values(values)

    def update(self, entity: Any) -> Update | None:
        """UPDATE the entity's updatable columns by id.

        Versioned rows also move the version forward and only match the
        version that was loaded. Returns None when there is nothing to set.
        """
        meta: EntityMetadata = entity.entity_metadata()
        table = self.tables.table_for(meta.entity_type)
        values: dict[str, Any] = {}
        for column in meta.columns:
            if column.is_id:
                continue
            if self.evaluator.is_updatable(entity, column):
                values[column.column_name] = self._write_value(
                    table, column, entity.get_field(column)
                )
        where = self._id_clause(table, entity)
        version = meta.version_column
        if version is not None:
            current = entity.get_field(version)
            values[version.column_name] = current + 1
            where = and_(where, table.c[version.column_name] == current)
        if not values:
            return None
        return table.update().where(where).values(values)

    def delete(self, entity: Any) -> Delete:
        meta: EntityMetadata = entity.entity_metadata()
        table = self.tables.table_for(meta.entity_type)
        where = self._id_clause(table, entity)
        version = meta.version_column
        if version is not None:
            where = and_(where, table.c[version.column_name] == entity.get_field(version))
        return table.delete().where(where)

    def scalar(self, query: ScalarQuery) -> Executable:
        sql = f"SELECT {query.select} FROM {query.from_}"
        if query.where:
            sql += f" WHERE {query.where}"
        if query.order_by:
            sql += f" ORDER BY {query.order_by}"
        if query.limit:
            sql += f" LIMIT {query.limit}"
        return text(sql)

    def child_id_list(
        self, table_name: str, id_column: str, parent_column: str
    ) -> Executable:
        """SELECT the child ids linked to ``:parent_id``."""
        return text(f"SELECT {id_column} FROM {table_name} WHERE {parent_column} = :parent_id")
