"""Tests for CLIP embedding adapter."""

import pytest

from circle_recall.errors import ValidationError


@pytest.fixture(scope="module")
def clip_embedder():
    """Create CLIP embedder for testing."""
    pytest.importorskip("sentence_transformers")

    from circle_recall.embeddings import ClipEmbedding

    return ClipEmbedding(model_name="clip-ViT-B-32")


@pytest.mark.asyncio
async def test_model_loading(clip_embedder):
    assert clip_embedder.model_name == "clip-ViT-B-32"
    assert clip_embedder.dimension == 512


@pytest.mark.asyncio
async def test_embed_text(clip_embedder):
    vector = await clip_embedder.embed("a dog on the beach")

    assert len(vector) == 512
    assert all(isinstance(v, float) for v in vector)


@pytest.mark.asyncio
async def test_embed_image_and_text_share_space(clip_embedder):
    """A red image is closer to "red" than to "blue"."""
    Image = pytest.importorskip("PIL.Image")

    image = Image.new("RGB", (64, 64), color=(255, 0, 0))
    image_vector = await clip_embedder.embed_image(image)
    red, blue = await clip_embedder.embed_batch(["a red square", "a blue square"])

    def dot(a, b):
        return sum(x * y for x, y in zip(a, b))

    assert len(image_vector) == 512
    assert dot(image_vector, red) > dot(image_vector, blue)


@pytest.mark.asyncio
async def test_embed_empty_text_raises(clip_embedder):
    with pytest.raises(ValidationError):
        await clip_embedder.embed("")
