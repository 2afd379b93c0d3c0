"""Core types shared by the load and save engines.

Query inputs are pydantic models so malformed filters are rejected before any
SQL is built.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EntityAction(StrEnum):
    """Pending write action on an entity.

    Priority when actions compete: DELETE > DISASSOCIATE > INSERT/UPDATE.
    """

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    DISASSOCIATE = "disassociate"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid action values."""
        return [a.value for a in cls]


class RelationshipKind(StrEnum):
    """How a child field relates to its parent."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid relationship kinds."""
        return [k.value for k in cls]


class Classification:
    """Security classification codes, lowest tier first."""

    UNRESTRICTED = "01SEC_Unrestricted"
    RESTRICTED = "02SEC_Restricted"
    CONFIDENTIAL = "03SEC_Confidential"
    SECRET = "04SEC_Secret"
    TOP_SECRET = "05SEC_TopSecret"
    SUPPRESS_ORDINARY = "10SEC_SuppressOrd"

    TIERS = (UNRESTRICTED, RESTRICTED, CONFIDENTIAL, SECRET, TOP_SECRET)


# Role required to change classification_code or redact_code columns.
CHANGE_CLASSIFICATION_ROLE = "ChangeSecClass"

CLASSIFICATION_CODE_COLUMN = "classification_code"
REDACT_CODE_COLUMN = "redact_code"


class EntityFilter(BaseModel):
    """Selection criteria for loading entities.

    ``where`` and ``order_by`` are SQL fragments over the entity's table and
    may reference ``:name`` parameters supplied in ``params``.
    """

    model_config = ConfigDict(extra="forbid")

    where: str | None = Field(default=None, description="SQL WHERE fragment")
    params: dict[str, Any] = Field(default_factory=dict, description="Bind parameters")
    order_by: str | None = Field(default=None, description="SQL ORDER BY fragment")
    limit: int | None = Field(default=None, ge=1, description="Maximum rows")
    locale: str | None = Field(default=None, description="Locale for localized columns")
    sql: str | None = Field(
        default=None, description="Complete SELECT replacing the generated statement"
    )

    @property
    def is_unrestricted(self) -> bool:
        """True when the filter selects every row of the table."""
        return not (self.where or self.sql or self.limit or self.order_by)


class ScalarQuery(BaseModel):
    """A single-column query returning one value or a list of values."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    select: str = Field(description="Column expression to select")
    from_: str = Field(alias="from", description="Table or join expression")
    where: str | None = None
    order_by: str | None = None
    limit: int | None = Field(default=None, ge=1)
    params: dict[str, Any] = Field(default_factory=dict)
