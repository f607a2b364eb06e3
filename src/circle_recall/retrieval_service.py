"""
Privacy-aware retrieval.

Turns a natural-language query into vector queries whose owner scopes
respect every relevant counterpart's privacy settings. Owner scopes are
computed per data category: a counterpart who shares location but not
health is searched for location records only.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from circle_recall.embeddings import TextEmbedding
from circle_recall.errors import ConfigurationError, ValidationError
from circle_recall.models import (
    CATEGORY_RECORD_TYPES,
    DATA_CATEGORIES,
    CircleSharingPolicy,
    ExcludedCounterpart,
    OwnerScopeResolution,
    RetrievalResult,
    VectorMatch,
)
from circle_recall.privacy import category_for_record_type, effective_sharing, restricted_categories
from circle_recall.relationships import RelationshipSettingsGateway
from circle_recall.retry import call_with_retry
from circle_recall.storage.vector.filters import parse_filter
from circle_recall.vector_store import MAX_TOP_K, DualIndexVectorStore

logger = logging.getLogger(__name__)


def _validate_top_k(top_k: int) -> None:
    if not isinstance(top_k, int) or not 0 < top_k <= MAX_TOP_K:
        raise ValidationError(f"top_k must be between 1 and {MAX_TOP_K}, got {top_k!r}")


def _validate_query(query: str) -> None:
    if not query or not query.strip():
        raise ValidationError("Query text must not be empty")


def _merge_matches(groups: Sequence[List[VectorMatch]], top_k: int) -> List[VectorMatch]:
    """Dedupe by id keeping the best score, sort by score descending, truncate."""
    best: Dict[str, VectorMatch] = {}
    for matches in groups:
        for match in matches:
            current = best.get(match.id)
            if current is None or match.score > current.score:
                best[match.id] = match
    return sorted(best.values(), key=lambda m: m.score, reverse=True)[:top_k]


class RetrievalService:
    """
    Orchestrates embedding, relationship lookups and scoped vector queries.

    Retrieval fails closed: a counterpart whose settings are missing or
    could not be fetched is searched for nothing. Embedding and vector
    query failures abort the retrieval after bounded retries; an empty
    result always means nothing matched.

    Example:
        >>> service = RetrievalService(embedding, vector_store, gateway)
        >>> result = await service.retrieve_for_circle(
        ...     "user", "when did we go jogging?", circle, ["alice", "bob"],
        ...     categories=["location"],
        ... )
        >>> result.owner_scopes["location"]
        ['user', 'alice']
    """

    def __init__(
        self,
        embedding: TextEmbedding,
        vector_store: DualIndexVectorStore,
        gateway: RelationshipSettingsGateway,
        visual_embedding: Optional[Any] = None,
        timeout: Optional[float] = None,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
    ):
        if embedding.dimension != vector_store.semantic.dimension:
            raise ConfigurationError(
                f"Embedding model {embedding.model_name} produces {embedding.dimension}-d "
                f"vectors; the semantic index expects {vector_store.semantic.dimension}"
            )
        self.embedding = embedding
        self.vector_store = vector_store
        self.gateway = gateway
        self.visual_embedding = visual_embedding
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    async def _with_retry(self, factory, operation: str):
        return await call_with_retry(
            factory,
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff=self.retry_backoff,
            operation=operation,
        )

    async def _embed_query(self, query: str, user_id: str, endpoint: str) -> List[float]:
        return await self._with_retry(
            lambda: self.embedding.embed(query, user_id=user_id, endpoint=endpoint),
            "query embedding",
        )

    async def retrieve_own(
        self,
        requester_id: str,
        query: str,
        top_k: int = 10,
        filter: Optional[Mapping[str, Any]] = None,
        endpoint: str = "rag_query",
    ) -> RetrievalResult:
        """
        Search the requester's own records.

        Raises:
            ValidationError: Empty requester or query, bad top_k or filter
            RemoteCallError: Embedding or query failed after retries
        """
        if not requester_id:
            raise ValidationError("requester_id must not be empty")
        _validate_query(query)
        _validate_top_k(top_k)
        parse_filter(filter)

        vector = await self._embed_query(query, requester_id, endpoint)
        matches = await self._with_retry(
            lambda: self.vector_store.query(
                "semantic",
                vector,
                top_k,
                filter=filter,
                owner_scope=requester_id,
                user_id=requester_id,
                endpoint=endpoint,
            ),
            "semantic query",
        )

        logger.info(f"{len(matches)} own records found for {requester_id}")
        return RetrievalResult(
            matches=matches,
            owner_scopes={category: [requester_id] for category in DATA_CATEGORIES},
        )

    async def resolve_owner_scopes(
        self,
        requester_id: str,
        circle: CircleSharingPolicy,
        counterpart_ids: Sequence[str],
        categories: Optional[Sequence[str]] = None,
    ) -> OwnerScopeResolution:
        """
        Work out which identities may be searched for each category.

        The requester is always in scope for their own data. A counterpart
        is in scope for a category only when both the circle and that
        counterpart's settings toward the requester allow it.

        Raises:
            ValidationError: Empty requester or an unknown category
        """
        if not requester_id:
            raise ValidationError("requester_id must not be empty")
        categories = list(dict.fromkeys(categories or DATA_CATEGORIES))
        unknown = [c for c in categories if c not in DATA_CATEGORIES]
        if unknown:
            raise ValidationError(f"Unknown data categories: {unknown}")

        report = await self.gateway.fetch_report_toward(requester_id, counterpart_ids)

        resolution = OwnerScopeResolution()
        for counterpart_id in report.not_configured:
            resolution.excluded.append(
                ExcludedCounterpart(counterpart_id=counterpart_id, reason="not_configured")
            )
        for counterpart_id, detail in report.failed.items():
            resolution.excluded.append(
                ExcludedCounterpart(counterpart_id=counterpart_id, reason="fetch_failed", detail=detail)
            )

        for counterpart_id, settings in report.settings.items():
            resolution.policies[counterpart_id] = effective_sharing(circle, settings)
            hidden = restricted_categories(circle, settings)
            if hidden:
                resolution.restricted[counterpart_id] = [c for c in DATA_CATEGORIES if c in hidden]

        for category in categories:
            owners = [requester_id]
            if circle.allows(category):
                owners.extend(
                    counterpart_id
                    for counterpart_id, policy in resolution.policies.items()
                    if policy.allows(category)
                )
            resolution.owner_scopes[category] = owners

        return resolution

    async def retrieve_for_circle(
        self,
        requester_id: str,
        query: str,
        circle: CircleSharingPolicy,
        counterpart_ids: Sequence[str],
        categories: Optional[Sequence[str]] = None,
        top_k: int = 10,
        filter: Optional[Mapping[str, Any]] = None,
        endpoint: str = "rag_query_circle",
    ) -> RetrievalResult:
        """
        Search the requester's data plus whatever each counterpart shares.

        Categories whose owner sets are identical share one query; the
        rest get their own. Queries run concurrently and their matches are
        merged, deduplicated and cut to top_k.

        Args:
            requester_id: Who is asking
            query: Natural-language query
            circle: Sharing policy of the circle the query runs in
            counterpart_ids: Circle members whose data may be relevant
            categories: Categories to search (None = all)
            top_k: Maximum number of matches overall
            filter: Extra metadata constraints for every query

        Returns:
            Matches plus the scopes, exclusions and restrictions behind them

        Raises:
            ValidationError: Bad arguments; nothing remote has been called
            RemoteCallError: Embedding or a query failed after retries
        """
        _validate_query(query)
        _validate_top_k(top_k)
        parse_filter(filter)

        resolution = await self.resolve_owner_scopes(
            requester_id, circle, counterpart_ids, categories
        )

        groups: Dict[Tuple[str, ...], List[str]] = {}
        for category, owners in resolution.owner_scopes.items():
            groups.setdefault(tuple(owners), []).append(CATEGORY_RECORD_TYPES[category])

        vector = await self._embed_query(query, requester_id, endpoint)

        async def run_group(owners: Tuple[str, ...], record_types: List[str]) -> List[VectorMatch]:
            scoped_filter = {"$and": [filter or {}, {"type": {"$in": record_types}}]}
            return await self._with_retry(
                lambda: self.vector_store.query(
                    "semantic",
                    vector,
                    top_k,
                    filter=scoped_filter,
                    owner_scope=list(owners),
                    user_id=requester_id,
                    endpoint=endpoint,
                ),
                f"semantic query for {record_types}",
            )

        tasks = [
            asyncio.ensure_future(run_group(owners, record_types))
            for owners, record_types in groups.items()
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # One failed query aborts the retrieval; stop the others retrying
            for task in tasks:
                task.cancel()
            raise

        scoped = [[m for m in group if self._in_scope(m, resolution)] for group in results]
        matches = _merge_matches(scoped, top_k)

        logger.info(
            f"Circle retrieval for {requester_id}: {len(matches)} matches from "
            f"{len(groups)} queries, {len(resolution.excluded)} counterparts excluded"
        )
        return RetrievalResult(
            matches=matches,
            owner_scopes=resolution.owner_scopes,
            excluded=resolution.excluded,
            restricted=resolution.restricted,
        )

    @staticmethod
    def _in_scope(match: VectorMatch, resolution: OwnerScopeResolution) -> bool:
        category = category_for_record_type(match.type)
        owners = resolution.owner_scopes.get(category) if category else None
        if owners is None or match.owner_id not in owners:
            logger.warning(
                f"Dropping out-of-scope match {match.id} (owner={match.owner_id}, type={match.type})"
            )
            return False
        return True

    async def retrieve_shared_activities(
        self,
        requester_id: str,
        query: str,
        circle: CircleSharingPolicy,
        counterpart_ids: Sequence[str],
        top_k: int = 10,
        endpoint: str = "rag_query_shared_activities",
    ) -> RetrievalResult:
        """
        Search shared activities involving the requester or anyone who
        shares activities with them.

        Only records owned by an identity in the activities scope are
        returned; being a participant does not expose another owner's record.
        """
        _validate_query(query)
        _validate_top_k(top_k)

        resolution = await self.resolve_owner_scopes(
            requester_id, circle, counterpart_ids, categories=["activities"]
        )
        participants = resolution.owner_scopes["activities"]

        vector = await self._embed_query(query, requester_id, endpoint)
        matches = await self._with_retry(
            lambda: self.vector_store.query_by_participants(
                vector,
                top_k,
                participants,
                user_id=requester_id,
                endpoint=endpoint,
                owner_scope=participants,
            ),
            "participants query",
        )
        matches = [m for m in matches if self._in_scope(m, resolution)]

        return RetrievalResult(
            matches=matches,
            owner_scopes=resolution.owner_scopes,
            excluded=resolution.excluded,
            restricted=resolution.restricted,
        )

    async def retrieve_similar_photos(
        self,
        requester_id: str,
        query_vector: Optional[Sequence[float]] = None,
        query_text: Optional[str] = None,
        top_k: int = 10,
        endpoint: str = "photo_search",
    ) -> RetrievalResult:
        """
        Search the requester's photos in the visual index.

        Pass either a 512-d ``query_vector`` (e.g. from an image) or a
        ``query_text`` to embed with the visual embedder.

        Raises:
            ValidationError: Neither or both of query_vector and query_text
            ConfigurationError: Text query without a visual embedder
        """
        if not requester_id:
            raise ValidationError("requester_id must not be empty")
        if (query_vector is None) == (query_text is None):
            raise ValidationError("Pass exactly one of query_vector or query_text")
        _validate_top_k(top_k)

        if query_text is not None:
            if self.visual_embedding is None:
                raise ConfigurationError("Text photo search needs a visual embedding model")
            _validate_query(query_text)
            query_vector = await self._with_retry(
                lambda: self.visual_embedding.embed(query_text, user_id=requester_id),
                "visual text embedding",
            )

        matches = await self._with_retry(
            lambda: self.vector_store.query(
                "visual",
                query_vector,
                top_k,
                owner_scope=requester_id,
                user_id=requester_id,
                endpoint=endpoint,
            ),
            "visual query",
        )
        return RetrievalResult(matches=matches, owner_scopes={"photos": [requester_id]})
