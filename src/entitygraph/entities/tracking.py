"""Value comparison used for change detection."""

from __future__ import annotations

import copy
import datetime
from typing import Any

from entitygraph.metadata.descriptors import ColumnDescriptor


def _to_second(value: datetime.datetime) -> datetime.datetime:
    return value.replace(microsecond=0)


def _normalize_bytes(value: Any) -> Any:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def geometry_equal(original: Any, current: Any) -> bool:
    """Compare two (E)WKB values as decoded geometries.

    Raises:
        ImportError: If shapely is not installed
    """
    try:
        import shapely
    except ImportError as e:
        raise ImportError(
            "shapely is required to compare geometry columns. "
            "Install it with: pip install entitygraph[geometry]"
        ) from e

    left = shapely.from_wkb(_normalize_bytes(original))
    right = shapely.from_wkb(_normalize_bytes(current))
    return bool(left.equals(right))


def values_equal(column: ColumnDescriptor, original: Any, current: Any) -> bool:
    """Compare a snapshot value with the current value of a column.

    Datetimes are compared to the second since storage may round the
    fractional part. Geometry values are compared as decoded geometries, so
    two encodings of the same shape are equal. Other binary values are
    compared as plain bytes. A declared comparator takes precedence.
    """
    if original is None or current is None:
        return original is None and current is None
    if column.comparator is not None:
        return bool(column.comparator(original, current))
    if isinstance(original, datetime.datetime) and isinstance(current, datetime.datetime):
        return _to_second(original) == _to_second(current)
    if column.is_geometry:
        return geometry_equal(original, current)
    if column.is_binary:
        return _normalize_bytes(original) == _normalize_bytes(current)
    return original == current


def snapshot_value(value: Any) -> Any:
    """Copy a value so later in-place edits do not alter the snapshot."""
    if isinstance(value, (list, dict, set, bytearray)):
        return copy.deepcopy(value)
    return value
