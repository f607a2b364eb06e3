"""
Dual-index vector storage.

Two independent namespaces on one vector provider, never cross-queried:

- semantic (1024 dims): text-derived records of every type
- visual (512 dims): image embeddings, photo records only

Each namespace gets its own strongly typed handle so a vector of the wrong
size is rejected before it ever reaches the provider. The store scopes every
query by owner but does not decide who may see what; callers pass an owner
scope that has already been privacy-checked.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from circle_recall.errors import PartialBatchError, RemoteCallError, ValidationError
from circle_recall.models import RECORD_TYPES, IndexName, VectorMatch, VectorRecord
from circle_recall.storage.protocols import VectorIndexBackend
from circle_recall.storage.vector.filters import (
    Condition,
    owner_conditions,
    parse_filter,
)
from circle_recall.usage import UsageTracker

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100
MAX_TOP_K = 10_000

OwnerScope = Union[str, Sequence[str]]


class VectorIndex:
    """Handle on one namespace with a fixed dimension and set of record types."""

    name: IndexName
    dimension: int
    record_types: tuple

    def __init__(
        self,
        backend: VectorIndexBackend,
        namespace: str,
        batch_size: int = MAX_BATCH_SIZE,
        usage: Optional[UsageTracker] = None,
    ):
        if not 0 < batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self.backend = backend
        self.namespace = namespace
        self.batch_size = batch_size
        self.usage = usage or UsageTracker()

    async def initialize(self) -> None:
        """Create the namespace if missing; fail if it exists with another dimension."""
        await self.backend.ensure_namespace(self.namespace, self.dimension)

    def validate_vector(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise ValidationError(
                f"{self.name} index expects {self.dimension}-dimensional vectors, got {len(vector)}"
            )

    def validate_record(self, record: VectorRecord) -> None:
        self.validate_vector(record.values)
        record_type = record.metadata.get("type")
        if record_type is not None and record_type not in self.record_types:
            raise ValidationError(
                f"Record {record.id}: type '{record_type}' is not stored in the {self.name} index"
            )

    def _validate_top_k(self, top_k: int) -> None:
        if not isinstance(top_k, int) or not 0 < top_k <= MAX_TOP_K:
            raise ValidationError(f"top_k must be between 1 and {MAX_TOP_K}, got {top_k!r}")

    def _scope_conditions(self) -> List[Condition]:
        """Conditions every query on this index carries."""
        return []

    async def upsert_one(
        self, record: VectorRecord, user_id: Optional[str] = None, endpoint: Optional[str] = None
    ) -> str:
        """
        Write a single record. Writing the same id again replaces it.

        Returns:
            The record id

        Raises:
            ValidationError: If the record does not fit this index
        """
        self.validate_record(record)
        await self.backend.upsert(self.namespace, [record])
        await self.usage.track_vector_upsert(user_id, 1, endpoint or f"vector_upsert_{self.name}")
        logger.debug(f"Upserted record {record.id} into {self.name} index")
        return record.id

    async def upsert_batch(
        self,
        records: Sequence[VectorRecord],
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> int:
        """
        Write records in sequential chunks of at most ``batch_size``.

        The whole batch is validated before the first chunk is sent. Chunks
        already written stay written if a later one fails.

        Returns:
            Number of records written

        Raises:
            ValidationError: If any record does not fit this index (nothing written)
            PartialBatchError: If a chunk fails; reports the committed prefix
        """
        records = list(records)
        for record in records:
            self.validate_record(record)
        if not records:
            return 0

        endpoint = endpoint or f"vector_upsert_batch_{self.name}"
        committed = 0
        for chunk_index, start in enumerate(range(0, len(records), self.batch_size)):
            chunk = records[start : start + self.batch_size]
            try:
                await self.backend.upsert(self.namespace, chunk)
            except Exception as e:
                logger.error(
                    f"Batch upsert into {self.name} index failed at chunk {chunk_index} "
                    f"({committed}/{len(records)} records committed): {e}"
                )
                if committed:
                    await self.usage.track_vector_upsert(user_id, committed, endpoint)
                raise PartialBatchError(
                    f"Batch upsert into {self.name} index failed at chunk {chunk_index}; "
                    f"{committed} of {len(records)} records committed",
                    committed=committed,
                    failed_chunk=chunk_index,
                    chunk_size=self.batch_size,
                    total=len(records),
                    retryable=e.retryable if isinstance(e, RemoteCallError) else False,
                ) from e
            committed += len(chunk)

        await self.usage.track_vector_upsert(user_id, committed, endpoint)
        logger.info(
            f"Upserted {committed} records into {self.name} index in batches of {self.batch_size}"
        )
        return committed

    async def query(
        self,
        query_vector: Sequence[float],
        top_k: int,
        owner_scope: OwnerScope,
        filter: Optional[Mapping[str, Any]] = None,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> List[VectorMatch]:
        """
        Similarity search within an owner scope.

        Args:
            query_vector: Vector of this index's dimension
            top_k: Maximum number of matches
            owner_scope: One identity (equality) or several (inclusion)
            filter: Extra metadata constraints, combined with AND
            user_id: User to attribute usage to
            endpoint: Label for usage attribution

        Returns:
            Up to top_k matches, highest score first

        Raises:
            ValidationError: Bad vector, top_k, owner scope or filter
        """
        self.validate_vector(query_vector)
        self._validate_top_k(top_k)
        conditions = owner_conditions(owner_scope) + parse_filter(filter) + self._scope_conditions()

        matches = await self.backend.query(self.namespace, list(query_vector), top_k, conditions)
        await self.usage.track_vector_query(user_id, top_k, endpoint or f"vector_query_{self.name}")
        return matches

    async def fetch(self, ids: Sequence[str]) -> Dict[str, VectorRecord]:
        """Fetch stored records by id. Unknown ids are absent from the result."""
        if not ids:
            return {}
        return await self.backend.fetch(self.namespace, list(ids))

    async def delete_one(
        self, record_id: str, user_id: Optional[str] = None, endpoint: Optional[str] = None
    ) -> None:
        if not record_id:
            raise ValidationError("Record id must not be empty")
        await self.backend.delete_ids(self.namespace, [record_id])
        await self.usage.track_vector_delete(user_id, 1, endpoint or f"vector_delete_{self.name}")
        logger.debug(f"Deleted record {record_id} from {self.name} index")

    async def delete_all_for_owner(self, owner_id: str) -> None:
        """Delete every record owned by ``owner_id`` in this index."""
        conditions = owner_conditions(owner_id)
        await self.backend.delete_where(self.namespace, conditions)
        logger.info(f"Deleted all {self.name} vectors for owner: {owner_id}")


class SemanticIndex(VectorIndex):
    """1024-dimensional text-derived records of every type."""

    name = "semantic"
    dimension = 1024
    record_types = RECORD_TYPES

    async def query_by_participants(
        self,
        query_vector: Sequence[float],
        top_k: int,
        owner_ids: Sequence[str],
        filter: Optional[Mapping[str, Any]] = None,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        owner_scope: Optional[OwnerScope] = None,
    ) -> List[VectorMatch]:
        """
        Search shared-activity records whose participants include any of ``owner_ids``.

        Records are returned regardless of who owns them unless ``owner_scope``
        narrows the owners as in ``query``.

        Raises:
            ValidationError: Bad vector, top_k, identities or filter
        """
        self.validate_vector(query_vector)
        self._validate_top_k(top_k)
        participants = list(dict.fromkeys(owner_ids))
        if not participants or not all(isinstance(p, str) and p for p in participants):
            raise ValidationError("owner_ids must be a non-empty list of identities")

        conditions = [
            Condition("type", "$eq", "shared_activity"),
            Condition("participants", "$in", participants),
        ] + parse_filter(filter)
        if owner_scope is not None:
            conditions = owner_conditions(owner_scope) + conditions

        matches = await self.backend.query(self.namespace, list(query_vector), top_k, conditions)
        await self.usage.track_vector_query(
            user_id, top_k, endpoint or "vector_query_participants"
        )
        return matches


class VisualIndex(VectorIndex):
    """512-dimensional image embeddings; photo records only."""

    name = "visual"
    dimension = 512
    record_types = ("photo",)

    def validate_record(self, record: VectorRecord) -> None:
        super().validate_record(record)
        if record.metadata.get("type") != "photo":
            raise ValidationError(f"Record {record.id}: visual records must have type 'photo'")

    def _scope_conditions(self) -> List[Condition]:
        return [Condition("type", "$eq", "photo")]


class DualIndexVectorStore:
    """
    Owns the semantic and visual index handles and routes operations by index name.

    Example:
        >>> store = DualIndexVectorStore(QdrantIndexBackend(url="http://localhost:6333"))
        >>> await store.initialize()
        >>> await store.upsert_one("semantic", record, user_id="u1")
        >>> matches = await store.query("semantic", vector, top_k=5, owner_scope=["u1", "u2"])
    """

    def __init__(
        self,
        backend: VectorIndexBackend,
        semantic_namespace: str = "personal-ai-data",
        visual_namespace: str = "personal-ai-visual",
        batch_size: int = MAX_BATCH_SIZE,
        usage: Optional[UsageTracker] = None,
    ):
        if semantic_namespace == visual_namespace:
            raise ValueError("Semantic and visual indices need distinct namespaces")
        usage = usage or UsageTracker()
        self.semantic = SemanticIndex(backend, semantic_namespace, batch_size, usage)
        self.visual = VisualIndex(backend, visual_namespace, batch_size, usage)
        logger.info(
            f"DualIndexVectorStore initialized (semantic={semantic_namespace}, "
            f"visual={visual_namespace})"
        )

    def index(self, name: IndexName) -> VectorIndex:
        if name == "semantic":
            return self.semantic
        if name == "visual":
            return self.visual
        raise ValidationError(f"Unknown index '{name}'")

    async def initialize(self) -> None:
        await self.semantic.initialize()
        await self.visual.initialize()

    async def upsert_one(
        self,
        index: IndexName,
        record: VectorRecord,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> str:
        return await self.index(index).upsert_one(record, user_id=user_id, endpoint=endpoint)

    async def upsert_batch(
        self,
        index: IndexName,
        records: Sequence[VectorRecord],
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> int:
        return await self.index(index).upsert_batch(records, user_id=user_id, endpoint=endpoint)

    async def query(
        self,
        index: IndexName,
        query_vector: Sequence[float],
        top_k: int,
        filter: Optional[Mapping[str, Any]] = None,
        owner_scope: OwnerScope = (),
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> List[VectorMatch]:
        return await self.index(index).query(
            query_vector,
            top_k,
            owner_scope=owner_scope,
            filter=filter,
            user_id=user_id,
            endpoint=endpoint,
        )

    async def query_by_participants(
        self,
        query_vector: Sequence[float],
        top_k: int,
        owner_ids: Sequence[str],
        filter: Optional[Mapping[str, Any]] = None,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        owner_scope: Optional[OwnerScope] = None,
    ) -> List[VectorMatch]:
        return await self.semantic.query_by_participants(
            query_vector,
            top_k,
            owner_ids,
            filter=filter,
            user_id=user_id,
            endpoint=endpoint,
            owner_scope=owner_scope,
        )

    async def fetch(self, index: IndexName, ids: Sequence[str]) -> Dict[str, VectorRecord]:
        return await self.index(index).fetch(ids)

    async def delete_one(
        self,
        index: IndexName,
        record_id: str,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> None:
        await self.index(index).delete_one(record_id, user_id=user_id, endpoint=endpoint)

    async def delete_all_for_owner(self, index: IndexName, owner_id: str) -> None:
        await self.index(index).delete_all_for_owner(owner_id)


__all__ = [
    "DualIndexVectorStore",
    "SemanticIndex",
    "VisualIndex",
    "VectorIndex",
]
