"""Lookup of external collaborators that own some child fields."""

from __future__ import annotations

import logging
import threading
from typing import Any

from entitygraph.exceptions import ConfigurationError, MappingError

logger = logging.getLogger(__name__)


class DelegateRegistry:
    """Named objects that load and save children declared ``External``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._delegates: dict[str, Any] = {}

    def register(self, name: str, delegate: Any) -> None:
        with self._lock:
            self._delegates[name] = delegate
        logger.debug(f"Registered delegate '{name}'")

    def unregister(self, name: str) -> None:
        with self._lock:
            self._delegates.pop(name, None)

    def resolve(self, name: str) -> Any:
        """Get a registered delegate.

        Raises:
            ConfigurationError: If no delegate is registered under ``name``
        """
        with self._lock:
            delegate = self._delegates.get(name)
            available = sorted(self._delegates)
        if delegate is None:
            raise ConfigurationError(
                "DelegateRegistry",
                f"no delegate named '{name}'. Registered: {', '.join(available) or 'none'}",
            )
        return delegate

    def invoke(self, name: str, method: str, argument: Any, field_name: str = "") -> Any:
        """Call ``method`` on the named delegate with a single argument.

        Raises:
            ConfigurationError: If the delegate or method does not exist
            MappingError: If the delegate call fails
        """
        delegate = self.resolve(name)
        target = getattr(delegate, method, None)
        if target is None or not callable(target):
            raise ConfigurationError(
                type(delegate).__name__, f"delegate '{name}' has no method '{method}'"
            )
        try:
            return target(argument)
        except (TypeError, ValueError, AttributeError, LookupError) as e:
            raise MappingError(
                f"{name}.{method}", field_name or method, argument, str(e)
            ) from e
