"""Input parsing utilities for CLI commands."""

import importlib
import inspect
import json
from types import ModuleType
from typing import Any

from entitygraph.entities.base import ReadOnlyEntity


def parse_param(item: str) -> tuple[str, Any]:
    """Parse a ``name=value`` bind parameter.

    Values are read as JSON when possible so numbers, booleans and null keep
    their type; anything else is passed as a string.

    Examples:
        "id=5" → ("id", 5)
        "name=Ada" → ("name", "Ada")

    Raises:
        ValueError: If the item has no '='
    """
    if "=" not in item:
        raise ValueError(f"Invalid parameter: '{item}'. Expected format: name=value")
    name, raw = item.split("=", 1)
    name = name.strip()
    if not name:
        raise ValueError(f"Invalid parameter: '{item}'. Name is empty")
    try:
        return name, json.loads(raw)
    except json.JSONDecodeError:
        return name, raw


def parse_params(items: list[str] | None) -> dict[str, Any]:
    return dict(parse_param(item) for item in items or [])


def import_module(name: str) -> ModuleType:
    """Import a module by dotted name.

    Raises:
        ValueError: If the module cannot be imported
    """
    try:
        return importlib.import_module(name)
    except ImportError as e:
        raise ValueError(f"Cannot import module '{name}': {e}") from e


def load_entity_type(target: str) -> type:
    """Resolve ``package.module:ClassName`` to an entity class.

    Raises:
        ValueError: If the target is malformed, missing or not an entity
    """
    module_name, sep, class_name = target.partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"Invalid target: '{target}'. Expected format: module:ClassName")
    module = import_module(module_name)
    entity_type = getattr(module, class_name, None)
    if entity_type is None:
        raise ValueError(f"Module '{module_name}' has no attribute '{class_name}'")
    if not (inspect.isclass(entity_type) and issubclass(entity_type, ReadOnlyEntity)):
        raise ValueError(f"'{target}' is not an entity class")
    return entity_type


def module_entity_types(module: ModuleType) -> list[type]:
    """Entity classes defined in ``module`` (not imported into it)."""
    return [
        obj
        for _, obj in inspect.getmembers(module, inspect.isclass)
        if issubclass(obj, ReadOnlyEntity) and obj.__module__ == module.__name__
    ]
