"""SQL generation and execution for entities."""

from entitygraph.storage.session import DataSession
from entitygraph.storage.statements import StatementBuilder
from entitygraph.storage.tables import TableFactory

__all__ = ["DataSession", "StatementBuilder", "TableFactory"]
