"""
In-memory vector index backend.

Provides a simple in-memory provider for vector namespaces with cosine
similarity search, suitable for testing and development. For production,
use the Qdrant backend.
"""

import logging
from typing import Dict, List, Sequence

from circle_recall.errors import ConfigurationError
from circle_recall.models import VectorMatch, VectorRecord
from circle_recall.storage.vector.filters import Condition, matches_all

logger = logging.getLogger(__name__)


class InMemoryIndexBackend:
    """
    In-memory implementation of the VectorIndexBackend protocol.

    Stores records per namespace in dictionaries. Data is lost on restart.
    Every provider call is appended to ``calls`` so tests can assert on
    the exact traffic a higher layer produced.
    """

    def __init__(self):
        self._namespaces: Dict[str, Dict[str, VectorRecord]] = {}
        self._dimensions: Dict[str, int] = {}
        self.calls: List[tuple] = []

        logger.info("InMemoryIndexBackend initialized")

    def _namespace(self, name: str) -> Dict[str, VectorRecord]:
        if name not in self._namespaces:
            raise ConfigurationError(f"Namespace '{name}' does not exist")
        return self._namespaces[name]

    async def ensure_namespace(self, name: str, dimension: int) -> None:
        existing = self._dimensions.get(name)
        if existing is None:
            self._namespaces[name] = {}
            self._dimensions[name] = dimension
            logger.info(f"Created namespace {name} ({dimension} dimensions)")
        elif existing != dimension:
            raise ConfigurationError(
                f"Namespace '{name}' has dimension {existing}, expected {dimension}"
            )

    def _cosine_similarity(self, vec1: List[float], vec2: List[float]) -> float:
        """Calculate cosine similarity between two vectors."""
        dot_product = sum(a * b for a, b in zip(vec1, vec2))
        magnitude1 = sum(a * a for a in vec1) ** 0.5
        magnitude2 = sum(b * b for b in vec2) ** 0.5

        if magnitude1 == 0 or magnitude2 == 0:
            return 0.0

        return dot_product / (magnitude1 * magnitude2)

    async def upsert(self, name: str, records: Sequence[VectorRecord]) -> None:
        namespace = self._namespace(name)
        self.calls.append(("upsert", name, [r.id for r in records]))

        for record in records:
            namespace[record.id] = record.model_copy(deep=True)

        logger.debug(f"Upserted {len(records)} records into {name}")

    async def query(
        self,
        name: str,
        vector: List[float],
        top_k: int,
        conditions: Sequence[Condition],
    ) -> List[VectorMatch]:
        namespace = self._namespace(name)
        self.calls.append(("query", name, list(conditions)))

        results = []
        for record in namespace.values():
            if not matches_all(record.metadata, conditions):
                continue
            score = self._cosine_similarity(vector, record.values)
            results.append(VectorMatch(id=record.id, score=score, metadata=dict(record.metadata)))

        # Sort by score (highest first) and limit to top_k
        results.sort(key=lambda m: m.score, reverse=True)
        results = results[:top_k]

        logger.debug(f"{len(results)} results found in {name}")
        return results

    async def fetch(self, name: str, ids: Sequence[str]) -> Dict[str, VectorRecord]:
        namespace = self._namespace(name)
        return {i: namespace[i].model_copy(deep=True) for i in ids if i in namespace}

    async def delete_ids(self, name: str, ids: Sequence[str]) -> None:
        namespace = self._namespace(name)
        self.calls.append(("delete_ids", name, list(ids)))
        for record_id in ids:
            namespace.pop(record_id, None)

    async def delete_where(self, name: str, conditions: Sequence[Condition]) -> None:
        namespace = self._namespace(name)
        self.calls.append(("delete_where", name, list(conditions)))

        doomed = [rid for rid, rec in namespace.items() if matches_all(rec.metadata, conditions)]
        for record_id in doomed:
            del namespace[record_id]

        logger.info(f"Deleted {len(doomed)} records from {name}")

    def count(self, name: str) -> int:
        return len(self._namespace(name))
