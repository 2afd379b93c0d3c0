"""Access control and redaction decisions.

Classification tiers are ordered; holding a tier grants every lower tier.
Codes outside the tier list are specialty clearances that only their own
role or top secret can see.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

from entitygraph.core.context import current_context
from entitygraph.core.types import (
    CHANGE_CLASSIFICATION_ROLE,
    CLASSIFICATION_CODE_COLUMN,
    REDACT_CODE_COLUMN,
    Classification,
)
from entitygraph.exceptions import AccessDeniedError
from entitygraph.metadata.descriptors import ChildDescriptor, ColumnDescriptor
from entitygraph.security.messages import REDACT_DATE_FORMAT, MessageCatalog

logger = logging.getLogger(__name__)

SECURITY_COLUMNS = (CLASSIFICATION_CODE_COLUMN, REDACT_CODE_COLUMN)


class AccessEvaluator:
    """Evaluates the active caller's clearances against classified data."""

    def __init__(self, messages: MessageCatalog | None = None) -> None:
        self.messages = messages or MessageCatalog()

    def has_clearance(self, classification_code: str | None) -> bool:
        """Check if the caller may see data with this classification.

        Args:
            classification_code: Code stored on the row or required by a field

        Returns:
            True for empty or unrestricted codes, when the caller holds the
            tier or a higher one, or holds a specialty code or top secret
        """
        if not classification_code or classification_code == Classification.UNRESTRICTED:
            return True
        ctx = current_context()
        if classification_code in Classification.TIERS:
            position = Classification.TIERS.index(classification_code)
            return ctx.is_in_role(*Classification.TIERS[position:])
        return ctx.is_in_role(classification_code, Classification.TOP_SECRET)

    def is_redaction_required(
        self, info: ColumnDescriptor | ChildDescriptor, override_code: str | None = None
    ) -> bool:
        """Decide if a redactable column or child must be withheld.

        A non-empty ``override_code`` (the entity's redact code) replaces the
        field's declared minimum classification.
        """
        if info.redact is None:
            return False
        if override_code:
            return not self.has_clearance(override_code)
        return not self.has_clearance(info.redact.min_classification)

    def redacted_value(self, column: ColumnDescriptor) -> Any:
        """Placeholder value shown in place of a redacted column.

        The message text is converted to the column type on a best-effort
        basis. Text that does not convert yields None.
        """
        field_type = column.field_type
        message_code = column.redact.message_code if column.redact else None
        if message_code:
            text = self.messages.get(message_code, current_context().locale)
            if field_type is str:
                return text
            if field_type in (datetime.date, datetime.datetime):
                date_format = self.messages.get(REDACT_DATE_FORMAT, current_context().locale)
                try:
                    parsed = datetime.datetime.strptime(text, date_format)
                except ValueError:
                    logger.warning(
                        f"Redact text '{text}' for {column.field_name} does not match "
                        f"date format '{date_format}'"
                    )
                    return None
                return parsed.date() if field_type is datetime.date else parsed
            try:
                return field_type(text)
            except Exception as e:
                logger.error(
                    f"Cannot convert redact text '{text}' to {field_type} "
                    f"for {column.field_name}: {e}"
                )
                return None
        try:
            return field_type()
        except Exception:
            logger.debug(f"No default redact value for {column.field_name} of type {field_type}")
            return None

    def apply_redact_code(
        self,
        entity: Any,
        info: ColumnDescriptor | ChildDescriptor,
        override_code: str | None,
    ) -> None:
        """Raise the entity's redact code to a field's minimum classification.

        Only applies when no override code was set on the entity.
        """
        if override_code or info.redact is None or not info.redact.min_classification:
            return
        current = entity.get_redact_code()
        minimum = info.redact.min_classification
        if not current or minimum > current:
            entity.set_redact_code(minimum)

    def can_change_classification(self) -> bool:
        return current_context().is_in_role(CHANGE_CLASSIFICATION_ROLE)

    def is_updatable(self, entity: Any, column: ColumnDescriptor) -> bool:
        """Check if a column belongs in the entity's UPDATE statement.

        Raises:
            AccessDeniedError: If a security column was changed by a caller
                without the classification change role
        """
        if not column.updatable or column.is_version:
            return False
        if self.is_redaction_required(column, entity.get_redact_code()):
            return False
        if column.column_name in SECURITY_COLUMNS:
            if self.can_change_classification():
                return True
            original = entity.original_values.get(column.field_name)
            if entity.original_values and original != entity.get_field(column):
                raise AccessDeniedError(
                    type(entity).__name__, column.field_name, CHANGE_CLASSIFICATION_ROLE
                )
            return False
        if column.is_redact and entity.is_redacted:
            # The stored value was replaced on load and must not overwrite the original.
            return False
        return True

    def is_insertable(self, entity: Any, column: ColumnDescriptor) -> bool:
        """Check if a column belongs in the entity's INSERT statement.

        Null values are left out so storage defaults apply.

        Raises:
            AccessDeniedError: If a security column is set by a caller without
                the classification change role
        """
        if not column.insertable or entity.get_field(column) is None:
            return False
        if column.column_name in SECURITY_COLUMNS and not self.can_change_classification():
            raise AccessDeniedError(
                type(entity).__name__, column.field_name, CHANGE_CLASSIFICATION_ROLE
            )
        return True
