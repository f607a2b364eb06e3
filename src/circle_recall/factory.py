"""Wire a RetrievalService from settings."""

import logging
from typing import Optional

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.pool import StaticPool

from circle_recall.config import RecallSettings
from circle_recall.embeddings import ClipEmbedding, OpenAIEmbedding
from circle_recall.relationships import RelationshipSettingsGateway
from circle_recall.retrieval_service import RetrievalService
from circle_recall.storage import QdrantIndexBackend, SQLAlchemyRelationshipStore, SQLAlchemyUsageSink
from circle_recall.usage import UsageTracker
from circle_recall.vector_store import DualIndexVectorStore

logger = logging.getLogger(__name__)


def _create_engine(url: str) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        # Store calls run in worker threads; they must all see the same in-memory database
        return create_engine(
            url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    return create_engine(url)


async def build_retrieval_service(settings: Optional[RecallSettings] = None) -> RetrievalService:
    """
    Build a RetrievalService backed by Qdrant, OpenAI and a SQL database.

    Creates missing tables and collections, and verifies the dimensions of
    existing collections.

    Raises:
        ConfigurationError: Missing API key or a collection of the wrong dimension
    """
    settings = settings or RecallSettings()

    engine = _create_engine(settings.DATABASE_URL)
    relationship_store = SQLAlchemyRelationshipStore(engine)
    relationship_store.create_tables()
    usage_sink = SQLAlchemyUsageSink(engine)
    usage_sink.create_tables()
    usage = UsageTracker(usage_sink)

    embedding = OpenAIEmbedding(
        model=settings.EMBEDDING_MODEL,
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        dimensions=settings.EMBEDDING_DIMENSIONS,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
        cache_size=settings.EMBEDDING_CACHE_SIZE,
        usage=usage,
    )
    visual_embedding = (
        ClipEmbedding(model_name=settings.CLIP_MODEL) if settings.ENABLE_VISUAL_EMBEDDING else None
    )

    backend = QdrantIndexBackend(
        url=settings.QDRANT_URL,
        api_key=settings.QDRANT_API_KEY,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )
    vector_store = DualIndexVectorStore(
        backend,
        semantic_namespace=settings.SEMANTIC_COLLECTION,
        visual_namespace=settings.VISUAL_COLLECTION,
        batch_size=settings.UPSERT_BATCH_SIZE,
        usage=usage,
    )
    await vector_store.initialize()

    gateway = RelationshipSettingsGateway(
        relationship_store,
        max_concurrency=settings.RELATIONSHIP_FETCH_CONCURRENCY,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )

    logger.info(
        f"RetrievalService ready (embedding={settings.EMBEDDING_MODEL}, "
        f"visual={'on' if visual_embedding else 'off'}, qdrant={settings.QDRANT_URL})"
    )
    return RetrievalService(
        embedding,
        vector_store,
        gateway,
        visual_embedding=visual_embedding,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
        max_retries=settings.MAX_RETRIES,
        retry_backoff=settings.RETRY_BACKOFF_SECONDS,
    )
