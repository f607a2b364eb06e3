"""
Example: Embeddings with circle-recall

Demonstrates:
1. OpenAIEmbedding for the 1024-d semantic index, with its local cache
2. Usage metering of cache misses
3. ClipEmbedding for the 512-d visual index (text and images)

Install optional dependencies for CLIP:
    pip install circle-recall[visual]
"""

import asyncio
import os

from circle_recall.storage import InMemoryUsageSink
from circle_recall.usage import UsageTracker


async def example_openai():
    """Example: Cloud embedding with OpenAI."""
    if not os.getenv("OPENAI_API_KEY"):
        print("\nSkipping OpenAI example - set OPENAI_API_KEY environment variable")
        return

    from circle_recall.embeddings import OpenAIEmbedding

    print("\n=== OpenAI Embedding ===")

    sink = InMemoryUsageSink()
    embedder = OpenAIEmbedding(model="text-embedding-3-small", usage=UsageTracker(sink))
    print(f"Model: {embedder.model_name} ({embedder.dimension} dimensions)")

    # The second call is served from the cache and not metered
    await embedder.embed("I went jogging by the river", user_id="user", endpoint="demo")
    await embedder.embed("I went jogging by the river", user_id="user", endpoint="demo")
    print(f"Cache: {len(embedder.cache)} entries, {embedder.cache.hits} hits")

    vectors = await embedder.embed_batch(
        ["heart rate 58", "walked 10,000 steps", "lunch with Alice"], user_id="user"
    )
    print(f"Batch embedded {len(vectors)} texts")
    print(f"Metered events: {len(sink.events)}, estimated cost ${sink.total_cost('user'):.6f}")


async def example_clip():
    """Example: Local CLIP embeddings for photos."""
    try:
        from circle_recall.embeddings import ClipEmbedding

        embedder = ClipEmbedding()
    except ImportError as e:
        print(f"\nSkipping CLIP example - {e}")
        return

    from PIL import Image

    print("\n=== CLIP Embedding ===")
    print(f"Model: {embedder.model_name} ({embedder.dimension} dimensions)")

    image = Image.new("RGB", (224, 224), color=(255, 140, 0))
    image_vector = await embedder.embed_image(image)
    texts = ["an orange square", "a photo of a dog", "a snowy mountain"]
    text_vectors = await embedder.embed_batch(texts)

    for text, vector in zip(texts, text_vectors):
        score = sum(a * b for a, b in zip(image_vector, vector))
        print(f"  {score:.3f}  {text}")


async def main():
    await example_openai()
    await example_clip()


if __name__ == "__main__":
    asyncio.run(main())
