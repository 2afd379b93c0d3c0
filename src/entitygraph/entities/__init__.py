"""Entity base classes."""

from entitygraph.entities.base import Entity, ReadOnlyEntity
from entitygraph.entities.codes import CodeEntity
from entitygraph.entities.versioned import VersionedEntity

__all__ = ["ReadOnlyEntity", "Entity", "VersionedEntity", "CodeEntity"]
