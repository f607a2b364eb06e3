"""Test that adapters satisfy the TextEmbedding protocol."""

import pytest

from circle_recall.embeddings import TextEmbedding


@pytest.mark.asyncio
async def test_clip_embedding_is_protocol():
    """ClipEmbedding implements TextEmbedding protocol."""
    pytest.importorskip("sentence_transformers")

    from circle_recall.embeddings import ClipEmbedding

    embedder = ClipEmbedding(model_name="clip-ViT-B-32")
    assert isinstance(embedder, TextEmbedding)

    assert embedder.dimension == 512
    assert embedder.model_name == "clip-ViT-B-32"


@pytest.mark.asyncio
async def test_openai_is_protocol(monkeypatch):
    """OpenAIEmbedding implements TextEmbedding protocol."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key-for-testing")

    from circle_recall.embeddings import OpenAIEmbedding

    embedder = OpenAIEmbedding(model="text-embedding-3-small")
    assert isinstance(embedder, TextEmbedding)

    assert embedder.dimension == 1024
    assert embedder.model_name == "text-embedding-3-small"


def test_fake_embedding_is_protocol(fake_embedding):
    assert isinstance(fake_embedding, TextEmbedding)
