"""
Storage backends for vectors, relationship settings and usage events.

Provides protocol definitions plus in-memory implementations (tests,
development) and provider-backed ones (Qdrant, SQLAlchemy).
"""

from circle_recall.storage.protocols import RelationshipSettingsStore, UsageSink, VectorIndexBackend
from circle_recall.storage.relationships.memory import InMemoryRelationshipStore
from circle_recall.storage.relationships.sqlalchemy import SQLAlchemyRelationshipStore
from circle_recall.storage.usage.memory import InMemoryUsageSink
from circle_recall.storage.usage.sqlalchemy import SQLAlchemyUsageSink
from circle_recall.storage.vector.memory import InMemoryIndexBackend
from circle_recall.storage.vector.qdrant import QdrantIndexBackend

__all__ = [
    "VectorIndexBackend",
    "RelationshipSettingsStore",
    "UsageSink",
    # Vector backends
    "InMemoryIndexBackend",
    "QdrantIndexBackend",
    # Relationship settings stores
    "InMemoryRelationshipStore",
    "SQLAlchemyRelationshipStore",
    # Usage sinks
    "InMemoryUsageSink",
    "SQLAlchemyUsageSink",
]
