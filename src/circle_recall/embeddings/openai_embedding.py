"""OpenAI embedding adapter for circle-recall."""

import logging
import os
from typing import Any, List, Optional

import openai
from openai import AsyncOpenAI

from circle_recall.embeddings.cache import DEFAULT_CACHE_SIZE, EmbeddingCache
from circle_recall.errors import ConfigurationError, RemoteCallError, ValidationError
from circle_recall.usage import UsageTracker

logger = logging.getLogger(__name__)

# Errors the provider will keep returning for the same request
_NON_RETRYABLE = (
    openai.BadRequestError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API, with a bounded local cache.

    Single-text calls go through the cache; batch calls bypass it. Only
    cache misses reach the API and get metered.

    Supports OpenAI's embedding models:
    - text-embedding-3-small (1536 dims, reducible; 1024 by default here)
    - text-embedding-3-large (3072 dims, reducible)

    Also compatible with OpenAI-compatible APIs (Azure, OpenRouter, etc.)

    Example:
        >>> embedder = OpenAIEmbedding(api_key="sk-...", usage=UsageTracker(sink))
        >>> vector = await embedder.embed("I went jogging", user_id="u1", endpoint="rag_query")
        >>> len(vector)
        1024
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: int = 1024,
        timeout: float = 30.0,
        max_retries: int = 0,
        cache_size: int = DEFAULT_CACHE_SIZE,
        usage: Optional[UsageTracker] = None,
        client: Optional[Any] = None,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-small)
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI, or Azure/OpenRouter)
            dimensions: Output dimension requested from the model
            timeout: Request timeout in seconds
            max_retries: SDK-level retries (0: retry policy belongs to the caller)
            cache_size: Capacity of the single-text cache
            usage: Tracker to meter tokens on cache misses
            client: Pre-built async client (tests, custom transports)

        Raises:
            ConfigurationError: If no API key is available
        """
        self._model = model
        self._dimension = dimensions
        self._cache = EmbeddingCache(cache_size)
        self._usage = usage or UsageTracker()

        if client is not None:
            self._client = client
        else:
            key = api_key or os.getenv("OPENAI_API_KEY")
            if not key:
                raise ConfigurationError(
                    "OPENAI_API_KEY is not set - configure it in the environment "
                    "or pass api_key explicitly"
                )
            self._client = AsyncOpenAI(
                api_key=key,
                base_url=base_url,
                timeout=timeout,
                max_retries=max_retries,
            )

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        """Identifier of the OpenAI model."""
        return self._model

    @property
    def cache(self) -> EmbeddingCache:
        return self._cache

    async def _create(self, texts: Any) -> Any:
        try:
            return await self._client.embeddings.create(
                model=self._model,
                input=texts,
                dimensions=self._dimension,
            )
        except _NON_RETRYABLE as e:
            logger.error(f"OpenAI embedding request rejected: {e}")
            raise RemoteCallError(f"OpenAI embedding request rejected: {e}", retryable=False) from e
        except openai.OpenAIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise RemoteCallError(f"OpenAI embedding error: {e}") from e

    async def embed(
        self, text: str, user_id: Optional[str] = None, endpoint: str = "embedding"
    ) -> List[float]:
        """
        Generate an embedding for one text, serving repeats from the cache.

        Args:
            text: Text to embed
            user_id: User to attribute usage to (None = not metered)
            endpoint: Label for usage attribution

        Returns:
            Embedding vector (length = self.dimension)

        Raises:
            ValidationError: If text is empty
            RemoteCallError: If the API request fails (token limit included)
        """
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")

        cached = self._cache.get(text)
        if cached is not None:
            return cached

        response = await self._create(text)
        vector = response.data[0].embedding
        self._cache.put(text, vector)

        await self._usage.track_embedding(
            user_id, _total_tokens(response), endpoint, model=self._model
        )
        return vector

    async def embed_batch(
        self, texts: List[str], user_id: Optional[str] = None, endpoint: str = "embedding_batch"
    ) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single request.

        The cache is neither read nor written.

        Returns:
            List of embedding vectors (same order as input)

        Raises:
            ValidationError: If any text is empty
            RemoteCallError: If the API request fails
        """
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValidationError("Cannot embed empty texts in batch")

        response = await self._create(list(texts))

        # The API reports an index per item; don't rely on response order
        items = sorted(response.data, key=lambda item: item.index)
        vectors = [item.embedding for item in items]
        if len(vectors) != len(texts):
            raise RemoteCallError(
                f"OpenAI returned {len(vectors)} embeddings for {len(texts)} texts",
                retryable=False,
            )

        await self._usage.track_embedding(
            user_id, _total_tokens(response), endpoint, model=self._model
        )
        return vectors

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        self._cache.clear()


def _total_tokens(response: Any) -> int:
    usage = getattr(response, "usage", None)
    return int(getattr(usage, "total_tokens", 0) or 0)
