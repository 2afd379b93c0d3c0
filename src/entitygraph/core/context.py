"""Per-call identity and override store.

Holds the user name, granted roles, locale and load inhibitors for one unit
of work. The active context lives in a ContextVar so concurrent callers on
different threads or tasks never observe each other's values.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


@dataclass
class CallContext:
    """Identity and overrides for the current unit of work.

    ``roles=None`` means no security context was established and every role
    check passes.
    """

    user_name: str | None = None
    roles: frozenset[str] | None = None
    locale: str | None = None
    load_inhibitors: set[str] = field(default_factory=set)
    values: dict[str, Any] = field(default_factory=dict)

    def is_in_role(self, *roles: str) -> bool:
        """Check if the caller holds at least one of the roles."""
        if self.roles is None:
            return True
        return any(role in self.roles for role in roles)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any, replace: bool = False) -> None:
        """Store a value, keeping an existing one unless ``replace`` is set."""
        if replace or key not in self.values:
            self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)

    def is_inhibited(self, *names: str) -> bool:
        return any(name in self.load_inhibitors for name in names)


_current_context: ContextVar[CallContext | None] = ContextVar("entitygraph_context", default=None)


def current_context() -> CallContext:
    """Get the active call context, creating an empty one if none is set."""
    ctx = _current_context.get()
    if ctx is None:
        ctx = CallContext()
        _current_context.set(ctx)
    return ctx


def current_user() -> str | None:
    return current_context().user_name


@contextmanager
def use_context(
    context: CallContext | None = None,
    *,
    user_name: str | None = None,
    roles: Iterable[str] | None = None,
    locale: str | None = None,
) -> Iterator[CallContext]:
    """Install a call context for the duration of the block.

    Example:
        with use_context(user_name="andrew", roles={"04SEC_Secret"}):
            repo.get_entity(Person, 1)
    """
    if context is None:
        context = CallContext(
            user_name=user_name,
            roles=frozenset(roles) if roles is not None else None,
            locale=locale,
        )
    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)
