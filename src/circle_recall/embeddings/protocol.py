"""
Text embedding protocol for circle-recall.

Provides a unified interface for embedding text into dense vectors
for semantic similarity search.
"""

from typing import List, Optional, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Expose their output dimension so it can be checked against an index
    2. Preserve input order in batch output
    3. Reject empty text before calling any remote model
    4. Let provider failures propagate (no retries at this layer)

    Example:
        >>> embedder = OpenAIEmbedding(api_key="sk-...")
        >>> vector = await embedder.embed("jogging route", user_id="u1", endpoint="rag_query")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        Must equal the dimension of the index its vectors are written to.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def embed(
        self, text: str, user_id: Optional[str] = None, endpoint: str = "embedding"
    ) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Non-empty text to embed
            user_id: User to attribute usage to (None = not metered)
            endpoint: Opaque label for usage attribution

        Returns:
            Embedding vector (length = self.dimension)

        Raises:
            ValidationError: If text is empty
            RemoteCallError: If the remote model fails
        """
        ...

    async def embed_batch(
        self, texts: List[str], user_id: Optional[str] = None, endpoint: str = "embedding_batch"
    ) -> List[List[float]]:
        """
        Embed several texts in one call.

        Returns:
            List of embedding vectors (same order as input)
        """
        ...
