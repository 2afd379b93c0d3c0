"""Entity declarations and the registry that reads them."""

from entitygraph.metadata.declarations import Child, ChildList, Column, External, Redact, table
from entitygraph.metadata.descriptors import ChildDescriptor, ColumnDescriptor, EntityMetadata
from entitygraph.metadata.registry import MetadataRegistry, default_registry, get_metadata

__all__ = [
    "Child",
    "ChildList",
    "Column",
    "External",
    "Redact",
    "table",
    "ChildDescriptor",
    "ColumnDescriptor",
    "EntityMetadata",
    "MetadataRegistry",
    "default_registry",
    "get_metadata",
]
