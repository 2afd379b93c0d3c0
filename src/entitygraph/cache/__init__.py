from entitygraph.cache.reference import ReferenceDataCache

__all__ = ["ReferenceDataCache"]
