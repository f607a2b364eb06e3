"""Shared fixtures: a deterministic embedder and in-memory backends."""

import pytest
import pytest_asyncio

from circle_recall.relationships import RelationshipSettingsGateway
from circle_recall.storage import InMemoryIndexBackend, InMemoryRelationshipStore, InMemoryUsageSink
from circle_recall.usage import UsageTracker
from circle_recall.vector_store import DualIndexVectorStore
from helpers import FakeEmbedding


@pytest.fixture
def fake_embedding():
    return FakeEmbedding()


@pytest.fixture
def usage_sink():
    return InMemoryUsageSink()


@pytest.fixture
def index_backend():
    return InMemoryIndexBackend()


@pytest_asyncio.fixture
async def vector_store(index_backend, usage_sink):
    store = DualIndexVectorStore(index_backend, usage=UsageTracker(usage_sink))
    await store.initialize()
    return store


@pytest.fixture
def relationship_store():
    return InMemoryRelationshipStore()


@pytest.fixture
def gateway(relationship_store):
    return RelationshipSettingsGateway(relationship_store)
