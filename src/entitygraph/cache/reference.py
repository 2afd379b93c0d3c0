"""Shared cache for reference data lists.

Full lists of cacheable types (code tables and the like) are kept per type
and locale under keys such as ``GenderType_en`` or ``GenderType_ALL``.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

ALL_LOCALES = "ALL"


class ReferenceDataCache:
    """Thread-safe map of cache key to entity list.

    Concurrent misses may populate the same key twice; the last write wins.
    Lists are deep-copied on the way in and out, so callers may change both
    the returned list and the entities in it without altering the cache.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, tuple[type, list[Any]]] = {}

    @staticmethod
    def key(entity_type: type, locale: str | None = None) -> str:
        return f"{entity_type.__name__}_{locale or ALL_LOCALES}"

    def is_cached(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, entity_type: type, key: str) -> list[Any] | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry[0] is not entity_type:
            return None
        return copy.deepcopy(entry[1])

    def put(self, key: str, entities: list[Any], entity_type: type) -> None:
        """Store ``entities`` under ``key``, replacing any existing list."""
        with self._lock:
            self._entries[key] = (entity_type, copy.deepcopy(list(entities)))
        logger.info(f"Cached {len(entities)} {entity_type.__name__} entities under {key}")

    def clear(self, key: str) -> None:
        with self._lock:
            removed = self._entries.pop(key, None)
        if removed is not None:
            logger.info(f"Removed {key} from cache")

    def invalidate(self, entity_type: type) -> int:
        """Drop every cached list of ``entity_type`` across all locales."""
        with self._lock:
            keys = [k for k, (t, _) in self._entries.items() if t is entity_type]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Cleared {len(keys)} cached {entity_type.__name__} lists")
        return len(keys)

    clear_entity_lists = invalidate

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cleared all cached lists")

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)
