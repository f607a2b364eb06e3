"""
Example: Privacy-aware retrieval across a circle

Demonstrates:
1. Storing records for several owners in the semantic index
2. Per-relationship privacy settings (directed, owner -> viewer)
3. Category-scoped owner sets for a multi-owner query
4. Fail-closed handling of counterparts without settings

Runs fully in memory with a toy embedder; no API keys needed.
"""

import asyncio
import hashlib
import logging
import math

from circle_recall import (
    CircleSharingPolicy,
    DualIndexVectorStore,
    RelationshipPrivacySettings,
    RelationshipSettingsGateway,
    RetrievalService,
    VectorRecord,
)
from circle_recall.storage import InMemoryIndexBackend, InMemoryRelationshipStore

DIMENSION = 1024


class HashingEmbedding:
    """Bag-of-words hashing embedder, good enough to rank a handful of texts."""

    dimension = DIMENSION
    model_name = "hashing-demo"

    async def embed(self, text, user_id=None, endpoint="embedding"):
        vector = [0.0] * DIMENSION
        for word in text.lower().split():
            digest = hashlib.blake2b(word.encode("utf-8"), digest_size=4).digest()
            vector[int.from_bytes(digest, "big") % DIMENSION] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]

    async def embed_batch(self, texts, user_id=None, endpoint="embedding_batch"):
        return [await self.embed(text) for text in texts]


DATA = [
    ("user-1", "user", "location", "morning jogging route along the river"),
    ("user-2", "user", "health", "resting heart rate 58 after jogging"),
    ("alice-1", "alice", "location", "jogging route through the park with the user"),
    ("alice-2", "alice", "health", "heart rate 150 while jogging"),
    ("bob-1", "bob", "location", "cycling route to the office"),
    ("carol-1", "carol", "location", "jogging route by the lake"),
]


async def main():
    embedder = HashingEmbedding()
    vector_store = DualIndexVectorStore(InMemoryIndexBackend())
    await vector_store.initialize()

    records = [
        VectorRecord(
            id=record_id,
            values=await embedder.embed(text),
            metadata={"owner_id": owner, "type": record_type, "text": text},
        )
        for record_id, owner, record_type, text in DATA
    ]
    await vector_store.upsert_batch("semantic", records)

    relationships = InMemoryRelationshipStore()
    # Alice lets the user see her locations but not her health data
    await relationships.save_settings("alice", "user", RelationshipPrivacySettings(health=False))
    await relationships.create_relationship("bob", "user")
    # Carol never configured anything, so she is excluded entirely

    service = RetrievalService(embedder, vector_store, RelationshipSettingsGateway(relationships))

    result = await service.retrieve_for_circle(
        requester_id="user",
        query="my jogging route and heart rate",
        circle=CircleSharingPolicy(),
        counterpart_ids=["alice", "bob", "carol"],
        categories=["location", "health"],
        top_k=5,
    )

    print("Owner scopes:")
    for category, owners in result.owner_scopes.items():
        print(f"  {category}: {owners}")

    print("\nMatches:")
    for match in result.matches:
        print(f"  {match.score:.3f}  [{match.owner_id}/{match.type}] {match.metadata['text']}")

    print("\nExcluded:")
    for excluded in result.excluded:
        print(f"  {excluded.counterpart_id}: {excluded.reason}")

    print("\nRestricted by relationship settings:")
    for counterpart, categories in result.restricted.items():
        print(f"  {counterpart}: {', '.join(categories)}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    asyncio.run(main())
