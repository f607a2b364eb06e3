"""CLIP embedding adapter for the visual index."""

import logging
from typing import Any, List, Optional, Union

from circle_recall.errors import ValidationError

logger = logging.getLogger(__name__)


class ClipEmbedding:
    """
    CLIP embedding adapter producing vectors for the visual index.

    Images and text land in the same vector space, so a photo can be found
    from another photo or from a text description.

    Supported CLIP models (sentence-transformers):
    - clip-ViT-B-32 (512 dims) - Default, matches the visual index
    - clip-ViT-B-16 (512 dims)
    - clip-ViT-L-14 (768 dims) - needs a visual index of matching size

    Example:
        >>> embedder = ClipEmbedding()
        >>> image_vector = await embedder.embed_image("beach.jpg")
        >>> text_vector = await embedder.embed("sunset on the beach")
        >>> len(image_vector) == len(text_vector) == 512
        True
    """

    def __init__(
        self,
        model_name: str = "clip-ViT-B-32",
        device: Optional[str] = None,
        normalize_embeddings: bool = True,
        cache_folder: Optional[str] = None,
    ):
        """
        Initialize CLIP embedder.

        Args:
            model_name: sentence-transformers CLIP model identifier
            device: Device for computation ("cuda", "cpu", or None for auto)
            normalize_embeddings: L2 normalize vectors (required for cosine similarity)
            cache_folder: Directory for model cache (None = default ~/.cache)
        """
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for ClipEmbedding. "
                "Install with: pip install circle-recall[visual]"
            ) from e

        self._model_name = model_name
        self._normalize = normalize_embeddings

        logger.info(f"Loading CLIP model: {model_name}")
        self._model = SentenceTransformer(model_name, device=device, cache_folder=cache_folder)
        # CLIP reports no sentence embedding dimension; measure it once instead
        self._dimension = len(self._encode("dimension check"))
        logger.info(f"Model loaded: {model_name} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    def _encode(self, item: Any) -> List[float]:
        embedding = self._model.encode(
            item,
            normalize_embeddings=self._normalize,
            show_progress_bar=False,
        )
        return embedding.tolist()

    async def embed(
        self, text: str, user_id: Optional[str] = None, endpoint: str = "visual_text_embedding"
    ) -> List[float]:
        """
        Embed a text description into the visual space.

        Runs locally, so nothing is metered.

        Raises:
            ValidationError: If text is empty
        """
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")
        return self._encode(text)

    async def embed_batch(
        self, texts: List[str], user_id: Optional[str] = None, endpoint: str = "visual_text_embedding"
    ) -> List[List[float]]:
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise ValidationError("Cannot embed empty texts in batch")

        embeddings = self._model.encode(
            list(texts),
            normalize_embeddings=self._normalize,
            show_progress_bar=False,
        )
        return embeddings.tolist()

    async def embed_image(self, image: Union[str, Any]) -> List[float]:
        """
        Embed an image.

        Args:
            image: Path to an image file, or a PIL image

        Returns:
            Embedding vector (length = self.dimension)
        """
        if isinstance(image, str):
            from PIL import Image

            with Image.open(image) as opened:
                return self._encode(opened.convert("RGB"))
        return self._encode(image)
