"""entitygraph - declarative object graph persistence.

Entities are pydantic models whose fields carry mapping markers. The
repository loads whole graphs, tracks changes, and writes them back in
dependency order with optimistic concurrency, clearance checks and redaction.

Example:
    from typing import Annotated

    from entitygraph import Column, Repository, VersionedEntity, table

    @table("person")
    class Person(VersionedEntity):
        id: Annotated[int | None, Column(id=True)] = None
        name: Annotated[str | None, Column()] = None

    repo = Repository("sqlite:///./people.db")
    repo.create_tables(Person)
    person = repo.save_entity(Person(name="Ada"))
    person.name = "Ada Lovelace"
    repo.save_entity(person)
"""

from entitygraph.cache.reference import ReferenceDataCache
from entitygraph.config import EngineSettings
from entitygraph.core.context import CallContext, current_context, current_user, use_context
from entitygraph.core.repository import Repository
from entitygraph.core.types import (
    Classification,
    EntityAction,
    EntityFilter,
    RelationshipKind,
    ScalarQuery,
)
from entitygraph.delegates import DelegateRegistry
from entitygraph.entities import CodeEntity, Entity, ReadOnlyEntity, VersionedEntity
from entitygraph.exceptions import (
    AccessDeniedError,
    CircularRelationshipError,
    ConcurrencyConflictError,
    ConfigurationError,
    EntityGraphError,
    MappingError,
    QueryError,
)
from entitygraph.metadata import (
    Child,
    ChildList,
    Column,
    External,
    MetadataRegistry,
    Redact,
    get_metadata,
    table,
)
from entitygraph.security import MessageCatalog

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "Repository",
    "EngineSettings",
    # Entities
    "ReadOnlyEntity",
    "Entity",
    "VersionedEntity",
    "CodeEntity",
    # Declarations
    "table",
    "Column",
    "Child",
    "ChildList",
    "External",
    "Redact",
    "MetadataRegistry",
    "get_metadata",
    # Types
    "EntityAction",
    "EntityFilter",
    "RelationshipKind",
    "ScalarQuery",
    "Classification",
    # Collaborators
    "CallContext",
    "current_context",
    "current_user",
    "use_context",
    "DelegateRegistry",
    "MessageCatalog",
    "ReferenceDataCache",
    # Exceptions
    "EntityGraphError",
    "ConfigurationError",
    "CircularRelationshipError",
    "MappingError",
    "QueryError",
    "ConcurrencyConflictError",
    "AccessDeniedError",
]
