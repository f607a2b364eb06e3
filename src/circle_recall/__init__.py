"""
circle-recall: Privacy-aware retrieval over personal data shared in circles.

Core components:
- embeddings: Text (OpenAI) and image (CLIP) embedding adapters with a bounded cache
- vector_store: Dual semantic/visual index store with owner-scoped queries
- privacy: Intersection of circle policies and per-relationship settings
- relationships: Concurrent, fail-closed relationship settings lookups
- retrieval_service: Multi-owner retrieval with per-category owner scopes
- storage: Protocols and backends (Qdrant, SQLAlchemy, in-memory)
- usage: Usage metering and cost estimates
"""

__version__ = "0.1.0"

from circle_recall.models import (
    CircleSharingPolicy,
    EffectiveSharingPolicy,
    RelationshipPrivacySettings,
    RetrievalResult,
    VectorMatch,
    VectorRecord,
)
from circle_recall.relationships import RelationshipSettingsGateway
from circle_recall.retrieval_service import RetrievalService
from circle_recall.vector_store import DualIndexVectorStore

__all__ = [
    "__version__",
    # Models
    "VectorRecord",
    "VectorMatch",
    "CircleSharingPolicy",
    "RelationshipPrivacySettings",
    "EffectiveSharingPolicy",
    "RetrievalResult",
    # Services
    "DualIndexVectorStore",
    "RelationshipSettingsGateway",
    "RetrievalService",
]
