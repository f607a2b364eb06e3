import logging
import uuid
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse
from qdrant_client.models import (
    DatetimeRange,
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PointIdsList,
    PointStruct,
    Range,
    VectorParams,
)

from circle_recall.errors import ConfigurationError, RemoteCallError, ValidationError
from circle_recall.models import VectorMatch, VectorRecord
from circle_recall.storage.vector.filters import Condition

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Qdrant point ids must be UUIDs or integers, so caller ids are mapped
# deterministically and the original id travels in the payload.
POINT_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "circle-recall")
RECORD_ID_KEY = "record_id"

_RANGE_KEYS = {"$gt": "gt", "$gte": "gte", "$lt": "lt", "$lte": "lte"}


def point_id(record_id: str) -> str:
    return str(uuid.uuid5(POINT_ID_NAMESPACE, record_id))


def _match_condition(key: str, value: Any) -> FieldCondition:
    # MatchValue only takes keywords, integers and booleans
    if isinstance(value, float):
        return FieldCondition(key=key, range=Range(gte=value, lte=value))
    return FieldCondition(key=key, match=MatchValue(value=value))


def build_filter(conditions: Sequence[Condition]) -> Optional[Filter]:
    """Translate parsed conditions into a Qdrant filter."""
    must: List[Any] = []
    must_not: List[Any] = []
    ranges: Dict[str, Dict[str, Any]] = {}

    for condition in conditions:
        if condition.op == "$eq":
            must.append(_match_condition(condition.key, condition.value))
        elif condition.op == "$ne":
            must_not.append(_match_condition(condition.key, condition.value))
        elif condition.op == "$in":
            must.append(FieldCondition(key=condition.key, match=MatchAny(any=condition.value)))
        elif condition.op == "$nin":
            must_not.append(FieldCondition(key=condition.key, match=MatchAny(any=condition.value)))
        else:
            ranges.setdefault(condition.key, {})[_RANGE_KEYS[condition.op]] = condition.value

    for key, bounds in ranges.items():
        if any(isinstance(v, str) for v in bounds.values()):
            must.append(FieldCondition(key=key, range=DatetimeRange(**bounds)))
        else:
            must.append(FieldCondition(key=key, range=Range(**bounds)))

    if not must and not must_not:
        return None
    return Filter(must=must or None, must_not=must_not or None)


class QdrantIndexBackend:
    """
    Qdrant implementation of the VectorIndexBackend protocol.

    Each namespace is a Qdrant collection using cosine distance.
    """

    def __init__(
        self,
        url: Optional[str] = "http://localhost:6333",
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncQdrantClient] = None,
    ):
        """
        Initialize the Qdrant backend.

        Args:
            url: Qdrant URL, or ":memory:" for the embedded local mode
            api_key: Qdrant Cloud API key
            timeout: Request timeout in seconds
            client: Pre-built client (overrides the other arguments)
        """
        if client is not None:
            self.client = client
        elif url == ":memory:":
            self.client = AsyncQdrantClient(location=":memory:")
        else:
            self.client = AsyncQdrantClient(
                url=url,
                api_key=api_key,
                timeout=int(timeout) if timeout else None,
            )
        logger.info(f"QdrantIndexBackend initialized (url={url})")

    async def _call(self, operation: str, name: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except UnexpectedResponse as e:
            status = e.status_code or 0
            retryable = status == 429 or status >= 500
            logger.error(f"Qdrant {operation} on {name} failed ({status}): {e}")
            raise RemoteCallError(f"Qdrant {operation} on {name} failed: {e}", retryable) from e
        except Exception as e:
            # httpx / grpc transport errors do not share a base class
            logger.error(f"Qdrant {operation} on {name} failed: {e}")
            raise RemoteCallError(f"Qdrant {operation} on {name} failed: {e}") from e

    async def ensure_namespace(self, name: str, dimension: int) -> None:
        exists = await self._call("collection_exists", name, self.client.collection_exists(name))
        if not exists:
            await self._call(
                "create_collection",
                name,
                self.client.create_collection(
                    collection_name=name,
                    vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
                ),
            )
            logger.info(f"Created Qdrant collection {name} ({dimension} dimensions)")
            return

        info = await self._call("get_collection", name, self.client.get_collection(name))
        vectors = info.config.params.vectors
        size = getattr(vectors, "size", None)
        if size != dimension:
            raise ConfigurationError(
                f"Qdrant collection '{name}' has dimension {size}, expected {dimension}"
            )
        logger.info(f"Qdrant collection already exists: {name}")

    async def upsert(self, name: str, records: Sequence[VectorRecord]) -> None:
        points = [
            PointStruct(
                id=point_id(record.id),
                vector=record.values,
                payload={**record.metadata, RECORD_ID_KEY: record.id},
            )
            for record in records
        ]
        await self._call(
            "upsert", name, self.client.upsert(collection_name=name, points=points, wait=True)
        )
        logger.debug(f"Upserted {len(points)} points into {name}")

    async def query(
        self,
        name: str,
        vector: List[float],
        top_k: int,
        conditions: Sequence[Condition],
    ) -> List[VectorMatch]:
        response = await self._call(
            "query",
            name,
            self.client.query_points(
                collection_name=name,
                query=vector,
                query_filter=build_filter(conditions),
                limit=top_k,
                with_payload=True,
                with_vectors=False,
            ),
        )

        matches = []
        for hit in response.points:
            payload = dict(hit.payload or {})
            record_id = payload.pop(RECORD_ID_KEY, str(hit.id))
            matches.append(VectorMatch(id=record_id, score=hit.score, metadata=payload))

        logger.debug(f"{len(matches)} hits found in {name}")
        return matches

    async def fetch(self, name: str, ids: Sequence[str]) -> Dict[str, VectorRecord]:
        points = await self._call(
            "retrieve",
            name,
            self.client.retrieve(
                collection_name=name,
                ids=[point_id(i) for i in ids],
                with_vectors=True,
                with_payload=True,
            ),
        )

        records = {}
        for point in points:
            payload = dict(point.payload or {})
            record_id = payload.pop(RECORD_ID_KEY, str(point.id))
            records[record_id] = VectorRecord(id=record_id, values=point.vector, metadata=payload)
        return records

    async def delete_ids(self, name: str, ids: Sequence[str]) -> None:
        await self._call(
            "delete",
            name,
            self.client.delete(
                collection_name=name,
                points_selector=PointIdsList(points=[point_id(i) for i in ids]),
                wait=True,
            ),
        )

    async def delete_where(self, name: str, conditions: Sequence[Condition]) -> None:
        query_filter = build_filter(conditions)
        if query_filter is None:
            raise ValidationError("Refusing to delete without a filter")

        await self._call(
            "delete",
            name,
            self.client.delete(
                collection_name=name,
                points_selector=FilterSelector(filter=query_filter),
                wait=True,
            ),
        )
