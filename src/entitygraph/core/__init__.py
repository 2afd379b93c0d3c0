"""Core components for entitygraph."""

from entitygraph.core.connection import DatabaseConnection
from entitygraph.core.context import CallContext, current_context, current_user, use_context
from entitygraph.core.types import (
    Classification,
    EntityAction,
    EntityFilter,
    RelationshipKind,
    ScalarQuery,
)

__all__ = [
    "DatabaseConnection",
    "CallContext",
    "current_context",
    "current_user",
    "use_context",
    "Classification",
    "EntityAction",
    "EntityFilter",
    "RelationshipKind",
    "ScalarQuery",
]
