"""Reference code entities."""

from __future__ import annotations

from typing import Annotated

from entitygraph.entities.base import ReadOnlyEntity
from entitygraph.metadata.declarations import Column, table


@table(name=None, cacheable=True, sort="display_value")
class CodeEntity(ReadOnlyEntity):
    """A code list row: code, localized display value, description and status.

    Subclasses declare their own table and inherit the cacheable flag:

        @table("party.gender_type")
        class GenderType(CodeEntity):
            pass
    """

    code: Annotated[str | None, Column(id=True)] = None
    display_value: Annotated[str | None, Column(localized=True)] = None
    description: Annotated[str | None, Column(localized=True)] = None
    status: Annotated[str | None, Column()] = None

    def __str__(self) -> str:
        return self.display_value or self.code or ""
