"""Entities under optimistic concurrency control."""

from __future__ import annotations

import uuid
from typing import Annotated

from pydantic import Field

from entitygraph.core.context import current_user
from entitygraph.entities.base import Entity
from entitygraph.metadata.declarations import Column


def _new_row_id() -> str:
    return str(uuid.uuid4())


class VersionedEntity(Entity):
    """An entity carrying a row version, the last changing user and a row id.

    ``row_version`` is 0 until the entity is first written, so a versioned
    entity is new until saved even if its business id was assigned by the
    caller. ``row_id`` identifies the row independently of its business id.
    """

    row_version: Annotated[int, Column("rowversion", version=True)] = 0
    change_user: Annotated[str | None, Column("change_user")] = None
    row_id: Annotated[str, Column("rowidentifier")] = Field(default_factory=_new_row_id)

    @property
    def is_new(self) -> bool:
        return self.row_version == 0

    def pre_save(self) -> None:
        """Stamp the current user on rows being changed or deleted.

        A row last changed by someone else is updated before it is deleted so
        the deleting user is the one recorded.
        """
        super().pre_save()
        if self.is_modified() or self.to_delete:
            user = current_user()
            if self.to_delete and self.change_user is not None and self.change_user != user:
                self.set_update_before_delete(True)
            self.change_user = user

    def post_save(self) -> None:
        super().post_save()
        if self.entity_action is not None and not self.force_refresh:
            self.row_version += 1

    def _identity(self) -> tuple[object, ...] | None:
        if len(self.entity_metadata().id_columns) == 1:
            return super()._identity()
        return (self.row_id,)
