"""Immutable per-type metadata computed by the registry."""

from __future__ import annotations

import datetime
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from pydantic import TypeAdapter

from entitygraph.core.types import RelationshipKind
from entitygraph.metadata.declarations import External


@dataclass(frozen=True)
class RedactRule:
    min_classification: str | None = None
    message_code: str | None = None


@dataclass(frozen=True)
class ColumnDescriptor:
    """A mapped column of an entity type."""

    field_name: str
    column_name: str
    field_type: type
    is_id: bool = False
    insertable: bool = True
    updatable: bool = True
    localized: bool = False
    is_version: bool = False
    on_select: str | None = None
    on_change: str | None = None
    server_default: str | None = None
    redact: RedactRule | None = None
    comparator: Callable[[Any, Any], bool] | None = field(default=None, compare=False)

    @property
    def is_redact(self) -> bool:
        return self.redact is not None

    @property
    def is_binary(self) -> bool:
        return self.field_type in (bytes, bytearray, memoryview)

    @property
    def is_geometry(self) -> bool:
        """Geometry columns are read as EWKB bytes through ``st_asewkb``."""
        return (
            self.is_binary
            and self.on_select is not None
            and self.on_select.lower().startswith("st_asewkb")
        )

    @property
    def is_temporal(self) -> bool:
        return self.field_type in (datetime.datetime, datetime.date, datetime.time)

    @cached_property
    def adapter(self) -> TypeAdapter[Any]:
        """Validator coercing raw row values into the field type."""
        return TypeAdapter(self.field_type)


@dataclass(frozen=True)
class ChildDescriptor:
    """A child field: one-to-one, one-to-many or many-to-many."""

    field_name: str
    target_type: type
    kind: RelationshipKind
    parent_id_field: str | None = None
    child_id_field: str | None = None
    association_type: type | None = None
    insert_before_parent: bool = False
    read_only: bool = False
    cascade_delete: bool = False
    association_has_attributes: bool = False
    external: External | None = None
    redact: RedactRule | None = None

    @property
    def is_list(self) -> bool:
        return self.kind is not RelationshipKind.ONE_TO_ONE

    @property
    def is_many_to_many(self) -> bool:
        return self.kind is RelationshipKind.MANY_TO_MANY

    @property
    def is_external(self) -> bool:
        return self.external is not None

    @property
    def is_redact(self) -> bool:
        return self.redact is not None


@dataclass(frozen=True)
class EntityMetadata:
    """Everything the engines need to know about one entity type."""

    entity_type: type
    table_name: str | None
    columns: tuple[ColumnDescriptor, ...]
    children: tuple[ChildDescriptor, ...] = ()
    cacheable: bool = False
    sort_expression: str | None = None

    @property
    def type_name(self) -> str:
        return self.entity_type.__name__

    @cached_property
    def id_columns(self) -> tuple[ColumnDescriptor, ...]:
        return tuple(c for c in self.columns if c.is_id)

    @cached_property
    def version_column(self) -> ColumnDescriptor | None:
        return next((c for c in self.columns if c.is_version), None)

    @cached_property
    def _by_name(self) -> dict[str, ColumnDescriptor]:
        index: dict[str, ColumnDescriptor] = {}
        for column in self.columns:
            index[column.column_name.lower()] = column
            index[column.field_name.lower()] = column
        return index

    def column(self, name: str) -> ColumnDescriptor | None:
        """Find a column by field or column name, case-insensitively."""
        return self._by_name.get(name.lower())

    def child(self, field_name: str) -> ChildDescriptor | None:
        return next((c for c in self.children if c.field_name == field_name), None)
