"""Custom exceptions for entitygraph.

Every error carries a message and a JSON-serializable context so an outer
layer can translate it into a user-facing response:
- Configuration errors are raised at first use of a badly declared type
- Mapping errors say which entity, field and value type failed
- Concurrency and access errors are distinguished so callers can recover
"""

from __future__ import annotations

from typing import Any


class EntityGraphError(Exception):
    """Base exception for all entitygraph errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(EntityGraphError):
    """Failed to connect to the database."""

    pass


class ConfigurationError(EntityGraphError):
    """An entity type carries malformed metadata declarations."""

    def __init__(
        self, entity_type: str, message: str, field_name: str | None = None
    ) -> None:
        if field_name:
            full_message = f"{entity_type}.{field_name}: {message}"
        else:
            full_message = f"{entity_type}: {message}"
        super().__init__(full_message, {"entity_type": entity_type, "field_name": field_name})
        self.entity_type = entity_type
        self.field_name = field_name


class CircularRelationshipError(ConfigurationError):
    """Child declarations lead back to an entity type already on the path."""

    def __init__(self, path: list[str]) -> None:
        chain = " -> ".join(path)
        EntityGraphError.__init__(
            self,
            f"Circular child relationship detected: {chain}. "
            f"Mark one side as an External child or remove the back reference.",
            {"path": path},
        )
        self.entity_type = path[0] if path else ""
        self.field_name = None
        self.path = path


class MappingError(EntityGraphError):
    """Reading or writing a field value on an entity failed."""

    def __init__(
        self,
        entity_type: str,
        field_name: str,
        value: Any = None,
        reason: str | None = None,
    ) -> None:
        value_type = type(value).__name__
        message = f"Cannot map value of type '{value_type}' to {entity_type}.{field_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            {"entity_type": entity_type, "field_name": field_name, "value_type": value_type},
        )
        self.entity_type = entity_type
        self.field_name = field_name
        self.value_type = value_type


class QueryError(EntityGraphError):
    """A statement could not be built or executed."""

    def __init__(
        self, message: str, entity_type: str | None = None, operation: str | None = None
    ) -> None:
        super().__init__(message, {"entity_type": entity_type, "operation": operation})
        self.entity_type = entity_type
        self.operation = operation


class ConcurrencyConflictError(EntityGraphError):
    """A write collided with a newer version of the row in storage."""

    def __init__(self, entity_type: str, entity_id: Any, expected_version: int | None) -> None:
        message = (
            f"{entity_type} '{entity_id}' was changed or removed by another user "
            f"(expected row version {expected_version}). Reload it and retry."
        )
        super().__init__(
            message,
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "expected_version": expected_version,
            },
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version


class AccessDeniedError(EntityGraphError):
    """The caller lacks the clearance an operation requires."""

    def __init__(self, entity_type: str, field_name: str, required_role: str) -> None:
        message = (
            f"Changing {entity_type}.{field_name} requires the '{required_role}' role."
        )
        super().__init__(
            message,
            {
                "entity_type": entity_type,
                "field_name": field_name,
                "required_role": required_role,
            },
        )
        self.entity_type = entity_type
        self.field_name = field_name
        self.required_role = required_role
