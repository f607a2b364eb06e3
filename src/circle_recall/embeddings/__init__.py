"""
Text embedding abstractions for circle-recall.

Provides a protocol-based embedding interface with provider adapters:
- OpenAIEmbedding: OpenAI API embeddings for the semantic index, cached
- ClipEmbedding: local CLIP embeddings for the visual index
  (needs the optional sentence-transformers extra at construction time)
"""

from circle_recall.embeddings.cache import EmbeddingCache
from circle_recall.embeddings.clip_embedding import ClipEmbedding
from circle_recall.embeddings.openai_embedding import OpenAIEmbedding
from circle_recall.embeddings.protocol import TextEmbedding

__all__ = [
    "TextEmbedding",
    "EmbeddingCache",
    "OpenAIEmbedding",
    "ClipEmbedding",
]
