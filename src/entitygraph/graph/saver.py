"""Graph save engine.

Writes an entity and its children in dependency order. A child is written
before its parent when exactly one of these holds: the parent references the
child (``insert_before_parent``), or the child is being removed.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from entitygraph.cache.reference import ReferenceDataCache
from entitygraph.core.context import current_user
from entitygraph.delegates import DelegateRegistry
from entitygraph.entities.base import Entity
from entitygraph.entities.versioned import VersionedEntity
from entitygraph.graph.loader import GraphLoader
from entitygraph.metadata.descriptors import ChildDescriptor
from entitygraph.metadata.registry import MetadataRegistry
from entitygraph.security.clearance import AccessEvaluator
from entitygraph.storage.session import DataSession

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


def _is_writable(target: Any) -> bool:
    return isinstance(target, type) and issubclass(target, Entity)


class GraphSaver:
    """Persists entity graphs through the data session."""

    def __init__(
        self,
        session: DataSession,
        loader: GraphLoader,
        registry: MetadataRegistry,
        evaluator: AccessEvaluator,
        delegates: DelegateRegistry,
        cache: ReferenceDataCache,
    ) -> None:
        self.session = session
        self.loader = loader
        self.registry = registry
        self.evaluator = evaluator
        self.delegates = delegates
        self.cache = cache

    def save(self, entity: E | None) -> E | None:
        """Save an entity and its children.

        Returns:
            The saved entity, or None if the save deleted or disassociated it
        """
        if entity is None:
            return None
        entity_type = type(entity)
        if self.registry.is_cacheable(entity_type):
            self.cache.invalidate(entity_type)

        if entity.is_loaded and entity.has_id_changed():
            # Another entity's values were copied over this one; trust storage.
            logger.warning(
                f"Id of {entity_type.__name__} changed since load, refreshing before save"
            )
            self.loader.refresh(entity)

        loaded = entity.is_loaded
        entity.set_saving(True)
        entity.pre_save()
        self._save_children(entity, before=True)

        if entity.is_modified():
            entity.mark_for_save()
        elif not entity.to_remove:
            entity.reset_action()

        if entity.to_insert:
            loaded = self.session.insert(entity) > 0
        detached = entity.to_disassociate and entity.is_loaded and entity.is_modified()
        if entity.to_update or entity.update_before_delete or detached:
            loaded = self.session.update(entity) > 0
            if entity.update_before_delete:
                self._bump_version(entity)
            entity.set_update_before_delete(False)
        if entity.to_delete:
            self.session.delete(entity)

        if entity.force_refresh:
            action = entity.entity_action
            self.loader.refresh(entity)
            entity.set_action(action)

        entity.set_removed(entity.to_remove)
        self._save_children(entity, before=False)
        entity.post_save()
        entity.set_loaded(loaded)
        entity.set_force_refresh(False)
        entity.reset_action()
        entity.set_saving(False)
        return None if entity.is_removed else entity

    def _bump_version(self, entity: Entity) -> None:
        version = self.registry.get(type(entity)).version_column
        if version is not None:
            setattr(entity, version.field_name, (entity.get_field(version) or 0) + 1)

    def _save_children(self, entity: Entity, before: bool) -> None:
        override = entity.get_redact_code()
        for child in self.registry.children(type(entity)):
            if self.evaluator.is_redaction_required(child, override) or (
                child.is_redact and entity.is_redacted
            ):
                # Children withheld on load are never written back.
                continue
            if not _is_writable(child.target_type):
                self.save_other(entity, child, before)
            elif child.is_many_to_many:
                self._save_many_to_many(entity, child, before)
            elif child.is_list:
                self._save_one_to_many(entity, child, before)
            else:
                self._save_one_to_one(entity, child, before)

    def save_other(self, entity: Entity, child: ChildDescriptor, before: bool) -> None:
        """Hook for children that are not writable entities. Does nothing by default."""
        logger.debug(f"Skipping save of {type(entity).__name__}.{child.field_name}")

    def _save_child_entity(self, child: ChildDescriptor, value: Entity) -> Entity | None:
        if child.is_external:
            external = child.external
            if not external.save_method:
                return value
            return self.delegates.invoke(
                external.delegate, external.save_method, value, child.field_name
            )
        return self.save(value)

    def _save_one_to_one(self, entity: Entity, child: ChildDescriptor, before: bool) -> None:
        value: Entity | None = getattr(entity, child.field_name)
        if value is None or child.read_only:
            return
        if entity.to_delete and child.cascade_delete:
            value.mark_for_delete()

        if (before == child.insert_before_parent) != value.to_remove:
            if not child.insert_before_parent:
                column = self.registry.column(type(value), child.parent_id_field)
                value.set_field(column, entity.entity_id)
            saved = self._save_child_entity(child, value)
            setattr(entity, child.field_name, saved)

        if before and child.insert_before_parent:
            version_updated = entity.is_modified() and entity.to_remove
            column = self.registry.column(type(entity), child.child_id_field)
            child_id = entity.get_field(column)
            updated = False
            if value.to_remove and child_id is not None:
                entity.set_field(column, None)
                updated = True
            elif not value.to_remove and value.entity_id != child_id:
                entity.set_field(column, value.entity_id)
                updated = True
            if updated and not version_updated and isinstance(entity, VersionedEntity):
                entity.change_user = current_user()

    def _save_one_to_many(self, entity: Entity, child: ChildDescriptor, before: bool) -> None:
        values: list[Entity] | None = getattr(entity, child.field_name)
        if not values:
            return
        kept: list[Entity] = []
        for value in values:
            if entity.to_delete and child.cascade_delete and not child.read_only:
                value.mark_for_delete()
            if before == value.to_remove and (value.to_disassociate or not child.read_only):
                column = self.registry.column(type(value), child.parent_id_field)
                value.set_field(column, None if value.to_disassociate else entity.entity_id)
                saved = self._save_child_entity(child, value)
                if saved is not None:
                    kept.append(saved)
            else:
                kept.append(value)
        values[:] = kept

    def _association(self, entity: Entity, child: ChildDescriptor, value: Entity) -> Entity:
        association_type = child.association_type
        association = association_type.model_construct()
        association.set_field(
            self.registry.column(association_type, child.parent_id_field), entity.entity_id
        )
        association.set_field(
            self.registry.column(association_type, child.child_id_field), value.entity_id
        )
        return entity.initialize_association(association, value)

    def _save_many_to_many(self, entity: Entity, child: ChildDescriptor, before: bool) -> None:
        values: list[Entity] | None = getattr(entity, child.field_name)
        if not values:
            return
        linked_ids: list[Any] = []
        if not before:
            linked_ids = self.loader.child_id_list(child, entity.entity_id)

        kept: list[Entity] = []
        for value in values:
            if before and (entity.to_delete or value.to_remove):
                association = self.loader.refresh(self._association(entity, child, value))
                if association.is_loaded:
                    # Another branch of the graph may already have removed it.
                    association.mark_for_delete()
                    self.save(association)
                if not child.read_only:
                    if entity.to_delete and child.cascade_delete:
                        value.mark_for_delete()
                    self._save_child_entity(child, value)
            elif not before:
                if value.entity_id not in linked_ids:
                    save_value = value.is_new
                    existing = False
                else:
                    save_value = True
                    existing = True
                saved = value
                if not child.read_only and save_value:
                    saved = self._save_child_entity(child, value) or value
                kept.append(saved)
                if not existing:
                    association = self._association(entity, child, saved)
                    association.mark_for_save()
                    self.save(association)
                elif child.association_has_attributes:
                    association = self.loader.refresh(self._association(entity, child, saved))
                    association = entity.initialize_association(association, saved)
                    self.save(association)
            else:
                kept.append(value)
        values[:] = kept
