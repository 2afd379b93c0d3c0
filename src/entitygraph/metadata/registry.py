"""Entity metadata registry.

Reads the ``Annotated`` markers on an entity class once, validates them, and
publishes an immutable :class:`EntityMetadata`. Later lookups are plain dict
reads. Concurrent first computations for the same type are harmless: both
produce equal metadata and the first one published wins.
"""

from __future__ import annotations

import logging
import threading
import types
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel
from pydantic.errors import PydanticUndefinedAnnotation

from entitygraph.core.types import RelationshipKind
from entitygraph.exceptions import CircularRelationshipError, ConfigurationError
from entitygraph.metadata.declarations import (
    Child,
    ChildList,
    Column,
    External,
    Redact,
    declared_table,
    inherited_cacheable,
)
from entitygraph.metadata.descriptors import (
    ChildDescriptor,
    ColumnDescriptor,
    EntityMetadata,
    RedactRule,
)

logger = logging.getLogger(__name__)


def _strip_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _unwrap(annotation: Any) -> tuple[Any, bool]:
    """Return the element type and whether the annotation is a list."""
    inner = _strip_optional(annotation)
    if get_origin(inner) is list:
        args = get_args(inner)
        return (_strip_optional(args[0]) if args else Any), True
    return inner, False


def _marker(metadata: list[Any], kind: type) -> Any:
    return next((m for m in metadata if isinstance(m, kind)), None)


def _is_entity_type(candidate: Any) -> bool:
    from entitygraph.entities.base import ReadOnlyEntity

    return isinstance(candidate, type) and issubclass(candidate, ReadOnlyEntity)


def _is_writable_entity_type(candidate: Any) -> bool:
    from entitygraph.entities.base import Entity

    return isinstance(candidate, type) and issubclass(candidate, Entity)


class MetadataRegistry:
    """Memoized metadata lookup keyed by entity type."""

    def __init__(self) -> None:
        self._cache: dict[type, EntityMetadata] = {}
        self._lock = threading.Lock()

    def get(self, entity_type: type) -> EntityMetadata:
        """Get metadata for an entity type, computing it on first use.

        Raises:
            ConfigurationError: If the declarations are malformed
            CircularRelationshipError: If the type is reachable from itself
        """
        cached = self._cache.get(entity_type)
        if cached is not None:
            return cached
        return self._resolve(entity_type, ())

    def columns(self, entity_type: type) -> tuple[ColumnDescriptor, ...]:
        return self.get(entity_type).columns

    def id_columns(self, entity_type: type) -> tuple[ColumnDescriptor, ...]:
        return self.get(entity_type).id_columns

    def children(self, entity_type: type) -> tuple[ChildDescriptor, ...]:
        return self.get(entity_type).children

    def table_name(self, entity_type: type) -> str:
        name = self.get(entity_type).table_name
        if not name:
            raise ConfigurationError(
                entity_type.__name__, "no table declared. Decorate the class with @table(...)"
            )
        return name

    def is_cacheable(self, entity_type: type) -> bool:
        return self.get(entity_type).cacheable

    def sort_expression(self, entity_type: type) -> str | None:
        return self.get(entity_type).sort_expression

    def column(self, entity_type: type, name: str) -> ColumnDescriptor | None:
        return self.get(entity_type).column(name)

    def child(self, entity_type: type, field_name: str) -> ChildDescriptor:
        descriptor = self.get(entity_type).child(field_name)
        if descriptor is None:
            available = [c.field_name for c in self.children(entity_type)]
            raise ConfigurationError(
                entity_type.__name__,
                f"not a child field. Child fields: {', '.join(available) or 'none'}",
                field_name,
            )
        return descriptor

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _resolve(self, entity_type: type, path: tuple[type, ...]) -> EntityMetadata:
        cached = self._cache.get(entity_type)
        if cached is not None:
            return cached
        if entity_type in path:
            names = [t.__name__ for t in path[path.index(entity_type) :]]
            raise CircularRelationshipError([*names, entity_type.__name__])

        metadata = self._compute(entity_type, (*path, entity_type))
        with self._lock:
            return self._cache.setdefault(entity_type, metadata)

    def _compute(self, entity_type: type, path: tuple[type, ...]) -> EntityMetadata:
        name = entity_type.__name__
        if not (isinstance(entity_type, type) and issubclass(entity_type, BaseModel)):
            raise ConfigurationError(name, "entity types must be pydantic models")
        if not entity_type.__pydantic_complete__:
            try:
                entity_type.model_rebuild()
            except PydanticUndefinedAnnotation as e:
                raise ConfigurationError(name, f"unresolved annotation: {e}") from e

        columns: list[ColumnDescriptor] = []
        child_fields: list[tuple[str, Any, bool, list[Any]]] = []
        for field_name, info in entity_type.model_fields.items():
            marker_list = list(info.metadata)
            column = _marker(marker_list, Column)
            redact = _marker(marker_list, Redact)
            rule = RedactRule(redact.min_classification, redact.message_code) if redact else None
            if column is not None:
                field_type, _ = _unwrap(info.annotation)
                if get_origin(_strip_optional(info.annotation)) is list:
                    field_type = _strip_optional(info.annotation)
                columns.append(
                    ColumnDescriptor(
                        field_name=field_name,
                        column_name=(column.name or field_name).lower(),
                        field_type=field_type,
                        is_id=column.id,
                        insertable=column.insertable,
                        updatable=column.updatable,
                        localized=column.localized,
                        is_version=column.version,
                        on_select=column.on_select,
                        on_change=column.on_change,
                        server_default=column.server_default,
                        redact=rule,
                        comparator=column.comparator,
                    )
                )
            elif _marker(marker_list, Child) or _marker(marker_list, ChildList):
                target, is_list = _unwrap(info.annotation)
                child_fields.append((field_name, target, is_list, marker_list))

        table = declared_table(entity_type)
        sort = None
        for klass in entity_type.__mro__:
            declaration = declared_table(klass)
            if declaration is not None and declaration.sort:
                sort = declaration.sort
                break

        metadata = EntityMetadata(
            entity_type=entity_type,
            table_name=table.name if table else None,
            columns=tuple(columns),
            cacheable=inherited_cacheable(entity_type),
            sort_expression=sort,
        )
        children = tuple(
            self._child_descriptor(metadata, field_name, target, is_list, markers, path)
            for field_name, target, is_list, markers in child_fields
        )
        logger.debug(
            f"Computed metadata for {name}: {len(columns)} columns, {len(children)} children"
        )
        return EntityMetadata(
            entity_type=entity_type,
            table_name=metadata.table_name,
            columns=metadata.columns,
            children=children,
            cacheable=metadata.cacheable,
            sort_expression=metadata.sort_expression,
        )

    def _child_descriptor(
        self,
        parent: EntityMetadata,
        field_name: str,
        target: Any,
        is_list: bool,
        markers: list[Any],
        path: tuple[type, ...],
    ) -> ChildDescriptor:
        owner = parent.type_name
        external = _marker(markers, External)
        redact = _marker(markers, Redact)
        rule = RedactRule(redact.min_classification, redact.message_code) if redact else None

        if external is None and not _is_entity_type(target):
            raise ConfigurationError(
                owner,
                f"child type '{getattr(target, '__name__', target)}' is not an entity. "
                f"Use an entity subclass or declare an External delegate.",
                field_name,
            )
        target_meta = None
        if external is None:
            target_meta = self._resolve(target, path)

        one = _marker(markers, Child)
        if one is not None:
            if is_list:
                raise ConfigurationError(
                    owner, "list fields must be declared with ChildList", field_name
                )
            if one.insert_before_parent:
                self._require_column(parent, one.child_id_field, "child_id_field", field_name)
            elif target_meta is not None:
                self._require_column(
                    target_meta, one.parent_id_field, "parent_id_field", field_name
                )
            elif not one.parent_id_field:
                raise ConfigurationError(owner, "parent_id_field is required", field_name)
            return ChildDescriptor(
                field_name=field_name,
                target_type=target,
                kind=RelationshipKind.ONE_TO_ONE,
                parent_id_field=one.parent_id_field,
                child_id_field=one.child_id_field,
                insert_before_parent=one.insert_before_parent,
                read_only=one.read_only,
                cascade_delete=one.cascade_delete,
                external=external,
                redact=rule,
            )

        many: ChildList = _marker(markers, ChildList)
        if not is_list:
            raise ConfigurationError(owner, "ChildList requires a list[...] field", field_name)
        if not many.parent_id_field:
            raise ConfigurationError(owner, "parent_id_field is required", field_name)

        if many.association is not None:
            if not _is_writable_entity_type(many.association):
                raise ConfigurationError(
                    owner,
                    f"association type '{getattr(many.association, '__name__', many.association)}' "
                    f"must be a writable Entity subclass",
                    field_name,
                )
            if not many.child_id_field:
                raise ConfigurationError(
                    owner, "child_id_field is required for many-to-many lists", field_name
                )
            assoc_meta = self._resolve(many.association, path)
            self._require_column(assoc_meta, many.parent_id_field, "parent_id_field", field_name)
            self._require_column(assoc_meta, many.child_id_field, "child_id_field", field_name)
            if target_meta is not None and len(target_meta.id_columns) != 1:
                raise ConfigurationError(
                    owner,
                    f"many-to-many child '{target_meta.type_name}' needs exactly one id column",
                    field_name,
                )
            kind = RelationshipKind.MANY_TO_MANY
        else:
            if target_meta is not None:
                self._require_column(
                    target_meta, many.parent_id_field, "parent_id_field", field_name
                )
            kind = RelationshipKind.ONE_TO_MANY

        return ChildDescriptor(
            field_name=field_name,
            target_type=target,
            kind=kind,
            parent_id_field=many.parent_id_field,
            child_id_field=many.child_id_field,
            association_type=many.association,
            read_only=many.read_only,
            cascade_delete=many.cascade_delete,
            association_has_attributes=many.association_has_attributes,
            external=external,
            redact=rule,
        )

    @staticmethod
    def _require_column(
        metadata: EntityMetadata, name: str | None, role: str, field_name: str
    ) -> None:
        if not name:
            raise ConfigurationError(metadata.type_name, f"{role} is required", field_name)
        if metadata.column(name) is None:
            available = [c.field_name for c in metadata.columns]
            raise ConfigurationError(
                metadata.type_name,
                f"{role} '{name}' is not a column. Available columns: {', '.join(available)}",
                field_name,
            )


default_registry = MetadataRegistry()


def get_metadata(entity_type: type) -> EntityMetadata:
    """Metadata for ``entity_type`` from the default registry."""
    return default_registry.get(entity_type)
