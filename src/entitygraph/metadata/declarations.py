"""Declarative markers attached to entity fields.

Markers are placed in ``typing.Annotated`` metadata and read by the
metadata registry:

    @table("party.person", cacheable=False, sort="name")
    class Person(VersionedEntity):
        id: Annotated[int | None, Column(id=True)] = None
        name: Annotated[str | None, Column()] = None
        address_id: Annotated[int | None, Column()] = None
        address: Annotated[Address | None, Child(child_id_field="address_id")] = None
        phones: Annotated[list[Phone], ChildList(parent_id_field="person_id")] = Field(
            default_factory=list
        )
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

T = TypeVar("T", bound=type)


@dataclass(frozen=True)
class Column:
    """Maps a field to a table column.

    Attributes:
        name: Column name, defaults to the field name
        id: Part of the primary key
        insertable: Included in INSERT statements
        updatable: Included in UPDATE statements and change detection
        localized: Read through the translation function for the active locale
        on_select: SQL function wrapped around the column when reading
        on_change: SQL function wrapped around the value when writing
        version: Optimistic concurrency version column
        server_default: SQL default used when creating the table
        comparator: Replaces equality when detecting changes
    """

    name: str | None = None
    id: bool = False
    insertable: bool = True
    updatable: bool = True
    localized: bool = False
    on_select: str | None = None
    on_change: str | None = None
    version: bool = False
    server_default: str | None = None
    comparator: Callable[[Any, Any], bool] | None = None


@dataclass(frozen=True)
class Redact:
    """Replaces a value with a placeholder for callers without clearance.

    On a column the placeholder is the message text for ``message_code`` (or
    the type's zero value). On a child field the child is not loaded at all.
    """

    min_classification: str | None = None
    message_code: str | None = None


@dataclass(frozen=True)
class Child:
    """One-to-one child.

    With ``insert_before_parent`` the parent holds the foreign key in
    ``child_id_field`` and the child is written first. Otherwise the child
    holds the parent's id in ``parent_id_field`` and is written after.
    """

    insert_before_parent: bool = True
    parent_id_field: str | None = None
    child_id_field: str | None = None
    read_only: bool = False
    cascade_delete: bool = False


@dataclass(frozen=True)
class ChildList:
    """One-to-many list, or many-to-many when ``association`` is set.

    For many-to-many, ``parent_id_field`` and ``child_id_field`` name columns
    of the association type.
    """

    parent_id_field: str | None = None
    child_id_field: str | None = None
    association: type | None = None
    cascade_delete: bool = False
    read_only: bool = False
    association_has_attributes: bool = False


@dataclass(frozen=True)
class External:
    """Loads and saves a child through a registered delegate."""

    delegate: str
    load_method: str
    save_method: str | None = None


@dataclass(frozen=True)
class TableDeclaration:
    name: str | None
    cacheable: bool | None = None
    sort: str | None = None


_TABLES: dict[type, TableDeclaration] = {}


def table(
    name: str | None, cacheable: bool | None = None, sort: str | None = None
) -> Callable[[T], T]:
    """Class decorator declaring the table an entity type maps to.

    Args:
        name: Table identifier, optionally ``schema.table``
        cacheable: Whether full lists of this type are kept in the reference
            cache. ``None`` inherits from the base class.
        sort: Default ORDER BY expression for lists
    """

    def decorator(cls: T) -> T:
        _TABLES[cls] = TableDeclaration(name=name, cacheable=cacheable, sort=sort)
        return cls

    return decorator


def declared_table(cls: type) -> TableDeclaration | None:
    """The ``@table`` declaration made directly on ``cls``."""
    return _TABLES.get(cls)


def inherited_cacheable(cls: type) -> bool:
    for klass in cls.__mro__:
        declaration = _TABLES.get(klass)
        if declaration is not None and declaration.cacheable is not None:
            return declaration.cacheable
    return False
