"""Test helpers shared across modules."""

from typing import List, Optional


def unit_vector(dimension: int, hot: int, warm: Optional[int] = None) -> List[float]:
    """Mostly-zero vector; vectors sharing a ``hot`` index are similar."""
    vector = [0.0] * dimension
    vector[hot % dimension] = 1.0
    if warm is not None:
        vector[warm % dimension] = 0.5
    return vector


class FakeEmbedding:
    """Maps each text to a fixed vector and records every call.

    Exceptions queued in ``failures`` are raised by the next calls, in order.
    """

    def __init__(self, dimension: int = 1024, vectors: Optional[dict] = None):
        self._dimension = dimension
        self.vectors = vectors or {}
        self.calls: List[str] = []
        self.failures: List[Exception] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    async def embed(self, text, user_id=None, endpoint="embedding"):
        self.calls.append(text)
        if self.failures:
            raise self.failures.pop(0)
        return self.vectors.get(text, unit_vector(self._dimension, 0))

    async def embed_batch(self, texts, user_id=None, endpoint="embedding_batch"):
        return [await self.embed(text, user_id, endpoint) for text in texts]
