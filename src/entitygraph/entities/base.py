"""Entity base classes.

``ReadOnlyEntity`` is for types that are only ever loaded. ``Entity`` adds the
runtime state the save engine works with: a snapshot of the loaded values,
the pending action and the flags set while a save is in progress.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

from entitygraph.core.types import CLASSIFICATION_CODE_COLUMN, REDACT_CODE_COLUMN, EntityAction
from entitygraph.entities.tracking import snapshot_value, values_equal
from entitygraph.exceptions import MappingError
from entitygraph.metadata.descriptors import ChildDescriptor, ColumnDescriptor, EntityMetadata
from entitygraph.metadata.registry import get_metadata

logger = logging.getLogger(__name__)


class ReadOnlyEntity(BaseModel):
    """An entity mapped to a table through ``Annotated`` field markers."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _loaded: bool = PrivateAttr(default=False)
    _redacted: bool = PrivateAttr(default=False)

    @classmethod
    def entity_metadata(cls) -> EntityMetadata:
        return get_metadata(cls)

    @property
    def is_loaded(self) -> bool:
        """True if the entity was read from storage."""
        return self._loaded

    def set_loaded(self, loaded: bool) -> None:
        self._loaded = loaded

    @property
    def is_new(self) -> bool:
        return not self._loaded

    @property
    def is_redacted(self) -> bool:
        """True if any field or child was withheld from the caller on load."""
        return self._redacted

    def set_redacted(self, redacted: bool) -> None:
        self._redacted = redacted

    def get_field(self, column: ColumnDescriptor) -> Any:
        """Read the value of a mapped column.

        Raises:
            MappingError: If the field cannot be read
        """
        try:
            return getattr(self, column.field_name)
        except AttributeError as e:
            raise MappingError(type(self).__name__, column.field_name, None, str(e)) from e

    def set_field(self, column: ColumnDescriptor, value: Any) -> None:
        """Coerce ``value`` to the column's field type and assign it.

        Raises:
            MappingError: If the value cannot be converted
        """
        if value is not None:
            try:
                value = column.adapter.validate_python(value)
            except ValidationError as e:
                raise MappingError(
                    type(self).__name__, column.field_name, value, e.errors()[0]["msg"]
                ) from e
        setattr(self, column.field_name, value)

    def id_values(self) -> dict[str, Any]:
        return {c.field_name: self.get_field(c) for c in self.entity_metadata().id_columns}

    @property
    def entity_id(self) -> Any:
        """The single id value, or a tuple of values for composite keys."""
        values = tuple(self.id_values().values())
        if len(values) == 1:
            return values[0]
        return values

    def _security_value(self, column_name: str) -> str | None:
        column = self.entity_metadata().column(column_name)
        return self.get_field(column) if column is not None else None

    def get_classification_code(self) -> str | None:
        return self._security_value(CLASSIFICATION_CODE_COLUMN)

    def get_redact_code(self) -> str | None:
        return self._security_value(REDACT_CODE_COLUMN)

    def set_redact_code(self, value: str | None) -> None:
        column = self.entity_metadata().column(REDACT_CODE_COLUMN)
        if column is not None:
            setattr(self, column.field_name, value)

    def child_join_filter(self, child: ChildDescriptor) -> Any:
        """Override to load a child with a custom filter instead of its id join.

        Return an ``EntityFilter`` or ``None`` to use the declared join.
        """
        return None

    def _identity(self) -> tuple[Any, ...] | None:
        values = tuple(self.id_values().values())
        if all(v is None for v in values):
            return None
        return values

    def __eq__(self, other: object) -> bool:
        if other is self:
            return True
        if type(other) is not type(self):
            return False
        mine = self._identity()
        return mine is not None and mine == other._identity()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        identity = self._identity()
        if identity is None:
            return id(self)
        return hash((type(self).__name__, identity))


class Entity(ReadOnlyEntity):
    """A writable entity with change tracking and a pending action."""

    _action: EntityAction | None = PrivateAttr(default=None)
    _saving: bool = PrivateAttr(default=False)
    _removed: bool = PrivateAttr(default=False)
    _force_refresh: bool = PrivateAttr(default=False)
    _update_before_delete: bool = PrivateAttr(default=False)
    _snapshot: dict[str, Any] = PrivateAttr(default_factory=dict)

    def set_loaded(self, loaded: bool) -> None:
        """Set the loaded flag, snapshotting current values when loaded."""
        super().set_loaded(loaded)
        if loaded:
            self._snapshot = {
                c.field_name: snapshot_value(self.get_field(c))
                for c in self.entity_metadata().columns
            }

    @property
    def original_values(self) -> dict[str, Any]:
        return dict(self._snapshot)

    def is_modified(self) -> bool:
        """Check whether the entity differs from what was loaded.

        Without a snapshot the entity counts as modified only when it is new
        or an action was set explicitly. Otherwise every updatable,
        non-version column is compared with its snapshot value.
        """
        if not self._snapshot:
            return self.is_new or self._action is not None
        for column in self.entity_metadata().columns:
            if not column.updatable or column.is_version:
                continue
            original = self._snapshot.get(column.field_name)
            if not values_equal(column, original, self.get_field(column)):
                logger.debug(f"{type(self).__name__}.{column.field_name} changed")
                return True
        return False

    def has_id_changed(self) -> bool:
        """True if an id column no longer matches the loaded value."""
        if not self._snapshot:
            return False
        return any(
            self._snapshot.get(c.field_name) != self.get_field(c)
            for c in self.entity_metadata().id_columns
        )

    @property
    def entity_action(self) -> EntityAction | None:
        return self._action

    def set_action(self, action: EntityAction | None) -> None:
        """Set the pending action respecting DELETE > DISASSOCIATE > INSERT/UPDATE."""
        if action is None:
            self.reset_action()
        elif action is EntityAction.DELETE:
            self.mark_for_delete()
        elif action is EntityAction.DISASSOCIATE:
            self.mark_for_disassociate()
        else:
            self.mark_for_save()

    def mark_for_save(self) -> None:
        """Flag for INSERT when new or UPDATE otherwise, unless already removing."""
        if not self.to_insert and not self.to_remove:
            self._action = EntityAction.INSERT if self.is_new else EntityAction.UPDATE

    def mark_for_delete(self) -> None:
        self._action = EntityAction.DELETE

    def mark_for_disassociate(self) -> None:
        if not self.to_delete:
            self._action = EntityAction.DISASSOCIATE

    def reset_action(self) -> None:
        self._action = None

    @property
    def to_insert(self) -> bool:
        return self._action is EntityAction.INSERT

    @property
    def to_update(self) -> bool:
        return self._action is EntityAction.UPDATE

    @property
    def to_delete(self) -> bool:
        return self._action is EntityAction.DELETE

    @property
    def to_disassociate(self) -> bool:
        return self._action is EntityAction.DISASSOCIATE

    @property
    def to_remove(self) -> bool:
        """True when deleting or disassociating from the parent."""
        return self.to_delete or self.to_disassociate

    @property
    def is_saving(self) -> bool:
        return self._saving

    def set_saving(self, saving: bool) -> None:
        self._saving = saving

    @property
    def is_removed(self) -> bool:
        """True after a save that deleted or disassociated the entity."""
        return self._removed

    def set_removed(self, removed: bool) -> None:
        self._removed = removed

    @property
    def force_refresh(self) -> bool:
        return self._force_refresh

    def set_force_refresh(self, force: bool) -> None:
        self._force_refresh = force

    @property
    def update_before_delete(self) -> bool:
        return self._update_before_delete

    def set_update_before_delete(self, value: bool) -> None:
        self._update_before_delete = value

    def pre_save(self) -> None:
        """Hook run before the entity and its before-parent children are written."""

    def post_save(self) -> None:
        """Hook run after the entity and all its children are written."""

    def initialize_association(self, association: Entity, child: Entity) -> Entity:
        """Hook to fill extra columns on a synthesized many-to-many association."""
        return association
