"""Clearance checks and redaction."""

from entitygraph.security.clearance import AccessEvaluator
from entitygraph.security.messages import MessageCatalog

__all__ = ["AccessEvaluator", "MessageCatalog"]
