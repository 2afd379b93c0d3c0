"""Graph load engine.

Loads an entity row, applies visibility and redaction, then recursively loads
every declared child: one-to-one, one-to-many, many-to-many and delegate
owned children.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from pydantic import ValidationError

from entitygraph.core.context import current_context
from entitygraph.core.types import CLASSIFICATION_CODE_COLUMN, REDACT_CODE_COLUMN, EntityFilter
from entitygraph.delegates import DelegateRegistry
from entitygraph.entities.base import Entity, ReadOnlyEntity
from entitygraph.exceptions import QueryError
from entitygraph.metadata.descriptors import ChildDescriptor, EntityMetadata
from entitygraph.metadata.registry import MetadataRegistry
from entitygraph.security.clearance import AccessEvaluator
from entitygraph.storage.session import DataSession

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ReadOnlyEntity)


def as_filter(entity_filter: EntityFilter | dict[str, Any] | None) -> EntityFilter:
    """Validate a filter given as a model, a dict or nothing.

    Raises:
        QueryError: If the filter is malformed
    """
    if entity_filter is None:
        return EntityFilter()
    if isinstance(entity_filter, EntityFilter):
        return entity_filter
    try:
        return EntityFilter.model_validate(entity_filter)
    except ValidationError as e:
        raise QueryError(f"Invalid entity filter: {e}", operation="select") from e


class GraphLoader:
    """Builds entity graphs from rows returned by the data session."""

    def __init__(
        self,
        session: DataSession,
        registry: MetadataRegistry,
        evaluator: AccessEvaluator,
        delegates: DelegateRegistry,
    ) -> None:
        self.session = session
        self.registry = registry
        self.evaluator = evaluator
        self.delegates = delegates

    @contextmanager
    def _locale_scope(self, entity_filter: EntityFilter) -> Iterator[EntityFilter]:
        """Share the locale between the filter and the call context.

        A filter without a locale takes the context's, so children load in
        the same locale as their parent. A filter with one sets the context
        until the load returns.
        """
        ctx = current_context()
        if entity_filter.locale is None:
            if ctx.locale is not None:
                entity_filter = entity_filter.model_copy(update={"locale": ctx.locale})
            yield entity_filter
            return
        previous = ctx.locale
        ctx.locale = entity_filter.locale
        try:
            yield entity_filter
        finally:
            ctx.locale = previous

    def load(
        self, entity_type: type[E], entity_filter: EntityFilter | dict[str, Any] | None = None
    ) -> E | None:
        """Load one entity and its children.

        Returns:
            The entity, or None if no visible row matches
        """
        meta = self.registry.get(entity_type)
        with self._locale_scope(as_filter(entity_filter)) as scoped:
            row = self.session.query_row(meta, scoped)
            if row is None:
                return None
            entity = self.map_row(entity_type.model_construct(), meta, row)
            if entity is None:
                return None
            self.load_children(entity)
            return entity

    def load_list(
        self, entity_type: type[E], entity_filter: EntityFilter | dict[str, Any] | None = None
    ) -> list[E]:
        """Load every visible entity matching the filter, children included."""
        meta = self.registry.get(entity_type)
        entities: list[E] = []
        with self._locale_scope(as_filter(entity_filter)) as scoped:
            for row in self.session.query_rows(meta, scoped):
                entity = self.map_row(entity_type.model_construct(), meta, row)
                if entity is not None:
                    entities.append(entity)
            for entity in entities:
                self.load_children(entity)
        return entities

    def map_row(self, entity: E, meta: EntityMetadata, row: dict[str, Any]) -> E | None:
        """Copy a row onto an entity.

        Rows the caller lacks clearance for are treated as not found. Columns
        missing from the row keep their current value.
        """
        if not row:
            return None
        if not self.evaluator.has_clearance(row.get(CLASSIFICATION_CODE_COLUMN)):
            logger.debug(f"{meta.type_name} row hidden by classification")
            return None
        override = row.get(REDACT_CODE_COLUMN)
        entity.set_redacted(False)
        for column in meta.columns:
            key = column.column_name.lower()
            if key not in row:
                continue
            value = row[key]
            if self.evaluator.is_redaction_required(column, override):
                value = self.evaluator.redacted_value(column)
                entity.set_redacted(True)
            entity.set_field(column, value)
        for column in meta.columns:
            self.evaluator.apply_redact_code(entity, column, override)
        self._mark_loaded(entity)
        return entity

    @staticmethod
    def _mark_loaded(entity: ReadOnlyEntity) -> None:
        entity.set_loaded(True)
        if isinstance(entity, Entity) and not entity.is_saving:
            entity.reset_action()

    def refresh(self, entity: E) -> E:
        """Reload the entity's columns from storage by id.

        The entity is marked not loaded first, so if the row is gone it stays
        that way. Children are not reloaded.
        """
        meta = self.registry.get(type(entity))
        entity.set_loaded(False)
        clauses = []
        params: dict[str, Any] = {}
        for index, column in enumerate(meta.id_columns):
            clauses.append(f"{column.column_name} = :id_{index}")
            params[f"id_{index}"] = entity.get_field(column)
        entity_filter = EntityFilter(where=" AND ".join(clauses), params=params)
        with self._locale_scope(entity_filter) as scoped:
            row = self.session.query_row(meta, scoped)
        if row is not None:
            self.map_row(entity, meta, row)
        return entity

    def load_children(self, entity: ReadOnlyEntity) -> None:
        """Load every child field of ``entity``.

        Inhibited children are skipped. Children the caller may not see are
        skipped and the entity is marked redacted.
        """
        ctx = current_context()
        override = entity.get_redact_code()
        snapshot_code = override
        for child in self.registry.children(type(entity)):
            target_name = getattr(child.target_type, "__name__", str(child.target_type))
            redact_required = self.evaluator.is_redaction_required(child, override)
            if ctx.is_inhibited(target_name, child.field_name):
                logger.debug(f"Load of {target_name} inhibited")
            elif redact_required:
                logger.debug(f"{type(entity).__name__}.{child.field_name} redacted")
            else:
                if child.is_external:
                    value = self.load_external(entity, child)
                elif child.is_list:
                    value = self.load_child_list(entity, child)
                else:
                    value = self._load_one(entity, child)
                setattr(entity, child.field_name, value)
            entity.set_redacted(redact_required or entity.is_redacted)
            self.evaluator.apply_redact_code(entity, child, override)
        if entity.is_loaded and entity.get_redact_code() != snapshot_code:
            # The raised code is derived, not a caller change.
            self._mark_loaded(entity)

    def _load_one(self, entity: ReadOnlyEntity, child: ChildDescriptor) -> Any:
        entity_filter = entity.child_join_filter(child)
        if entity_filter is None:
            target = self.registry.get(child.target_type)
            if child.insert_before_parent:
                parent = self.registry.get(type(entity))
                child_id = entity.get_field(parent.column(child.child_id_field))
                if child_id is None:
                    return None
                id_column = target.id_columns[0].column_name
                entity_filter = EntityFilter(
                    where=f"{id_column} = :child_id", params={"child_id": child_id}
                )
            else:
                parent_column = target.column(child.parent_id_field).column_name
                entity_filter = EntityFilter(
                    where=f"{parent_column} = :parent_id", params={"parent_id": entity.entity_id}
                )
        return self.load(child.target_type, entity_filter)

    def child_list_filter(self, entity: ReadOnlyEntity, child: ChildDescriptor) -> EntityFilter:
        """The filter selecting a parent's one-to-many or many-to-many children."""
        entity_filter = entity.child_join_filter(child)
        if entity_filter is not None:
            return as_filter(entity_filter)
        target = self.registry.get(child.target_type)
        if child.is_many_to_many:
            association = self.registry.get(child.association_type)
            parent_column = association.column(child.parent_id_field).column_name
            child_column = association.column(child.child_id_field).column_name
            pk = target.id_columns[0].column_name
            where = (
                f"{pk} IN (SELECT a.{child_column} "
                f"FROM {self.registry.table_name(child.association_type)} a "
                f"WHERE a.{parent_column} = :parent_id)"
            )
        else:
            where = f"{target.column(child.parent_id_field).column_name} = :parent_id"
        return EntityFilter(where=where, params={"parent_id": entity.entity_id})

    def load_child_list(self, entity: ReadOnlyEntity, child: ChildDescriptor) -> list[Any]:
        return self.load_list(child.target_type, self.child_list_filter(entity, child))

    def child_id_list(self, child: ChildDescriptor, parent_id: Any) -> list[Any]:
        """Ids of the children linked to ``parent_id``.

        Many-to-many lists read the association table; one-to-many lists read
        the child table.
        """
        if child.is_many_to_many:
            association = self.registry.get(child.association_type)
            return self.session.child_ids(
                self.registry.table_name(child.association_type),
                association.column(child.child_id_field).column_name,
                association.column(child.parent_id_field).column_name,
                parent_id,
            )
        target = self.registry.get(child.target_type)
        return self.session.child_ids(
            self.registry.table_name(child.target_type),
            target.id_columns[0].column_name,
            target.column(child.parent_id_field).column_name,
            parent_id,
        )

    def load_external(self, entity: ReadOnlyEntity, child: ChildDescriptor) -> Any:
        if child.is_many_to_many:
            argument: Any = self.child_id_list(child, entity.entity_id)
        elif child.insert_before_parent:
            column = self.registry.get(type(entity)).column(child.child_id_field)
            argument = entity.get_field(column)
        else:
            argument = entity.entity_id
        external = child.external
        return self.delegates.invoke(
            external.delegate, external.load_method, argument, child.field_name
        )
