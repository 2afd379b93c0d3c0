"""SQLAlchemy table objects built from entity metadata.

Tables are only used to generate statements and to create test schemas;
migrations are out of scope.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import threading
import uuid
from collections.abc import Iterable
from typing import Any, get_origin

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Engine,
    Float,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    String,
    Table,
    Time,
    Uuid,
    text,
)
from sqlalchemy import Column as SAColumn
from sqlalchemy.types import TypeEngine

from entitygraph.metadata.descriptors import ColumnDescriptor, EntityMetadata
from entitygraph.metadata.registry import MetadataRegistry, default_registry

logger = logging.getLogger(__name__)

FIELD_TYPE_MAP: dict[Any, Any] = {
    str: lambda: String(),
    int: lambda: Integer(),
    float: lambda: Float(),
    bool: lambda: Boolean(),
    decimal.Decimal: lambda: Numeric(asdecimal=True),
    datetime.datetime: lambda: DateTime(),
    datetime.date: lambda: Date(),
    datetime.time: lambda: Time(),
    bytes: lambda: LargeBinary(),
    uuid.UUID: lambda: Uuid(),
    dict: lambda: JSON(),
    list: lambda: JSON(),
}


def sql_type_for(column: ColumnDescriptor) -> TypeEngine[Any]:
    """Map a column's Python field type to a SQLAlchemy type."""
    field_type = column.field_type
    factory = FIELD_TYPE_MAP.get(field_type) or FIELD_TYPE_MAP.get(get_origin(field_type))
    if factory is None:
        return String()
    return factory()


def split_table_name(name: str) -> tuple[str | None, str]:
    """Split ``schema.table`` into its parts."""
    if "." in name:
        schema, table_name = name.split(".", 1)
        return schema, table_name
    return None, name


class TableFactory:
    """Builds and caches one ``Table`` per entity type."""

    def __init__(
        self, registry: MetadataRegistry | None = None, metadata: MetaData | None = None
    ) -> None:
        self.registry = registry or default_registry
        self.metadata = metadata or MetaData()
        self._tables: dict[type, Table] = {}
        self._lock = threading.Lock()

    def table_for(self, entity_type: type) -> Table:
        table = self._tables.get(entity_type)
        if table is not None:
            return table
        table = self._build(self.registry.get(entity_type))
        with self._lock:
            return self._tables.setdefault(entity_type, table)

    def _build(self, meta: EntityMetadata) -> Table:
        schema, name = split_table_name(self.registry.table_name(meta.entity_type))
        composite = len(meta.id_columns) > 1
        columns = []
        for column in meta.columns:
            kwargs: dict[str, Any] = {"nullable": not column.is_id}
            if column.is_id:
                kwargs["primary_key"] = True
                kwargs["autoincrement"] = False if composite else "auto"
            if column.server_default is not None:
                kwargs["server_default"] = text(column.server_default)
            columns.append(SAColumn(column.column_name, sql_type_for(column), **kwargs))
        return Table(name, self.metadata, *columns, schema=schema, extend_existing=True)

    def related_types(self, entity_type: type) -> list[type]:
        """The type plus every entity type reachable through its children."""
        seen: list[type] = []
        pending = [entity_type]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.append(current)
            for child in self.registry.children(current):
                if child.association_type is not None:
                    pending.append(child.association_type)
                if not child.is_external:
                    pending.append(child.target_type)
        return seen

    def create_all(self, engine: Engine, entity_types: Iterable[type]) -> list[Table]:
        """Create tables for the entity types and everything they reference."""
        by_name: dict[str, Table] = {}
        for entity_type in entity_types:
            for related in self.related_types(entity_type):
                table = self.table_for(related)
                by_name.setdefault(table.fullname, table)
        tables = list(by_name.values())
        self.metadata.create_all(engine, tables=tables)
        logger.info(f"Created {len(tables)} tables: {', '.join(t.fullname for t in tables)}")
        return tables

    def drop_all(self, engine: Engine) -> None:
        self.metadata.drop_all(engine)
