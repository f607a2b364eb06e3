"""Tests for privacy-aware retrieval."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from circle_recall.errors import ConfigurationError, RemoteCallError, ValidationError
from circle_recall.models import CircleSharingPolicy, RelationshipPrivacySettings, VectorMatch, VectorRecord
from circle_recall.relationships import RelationshipSettingsGateway
from circle_recall.retrieval_service import RetrievalService, _merge_matches
from circle_recall.vector_store import DualIndexVectorStore
from helpers import FakeEmbedding, unit_vector


def record(record_id, owner, record_type, hot=0, **metadata):
    return VectorRecord(
        id=record_id,
        values=unit_vector(1024, hot),
        metadata={"owner_id": owner, "type": record_type, **metadata},
    )


@pytest_asyncio.fixture
async def populated_store(vector_store):
    await vector_store.upsert_batch(
        "semantic",
        [
            record("user-run", "user", "location", text="my morning run"),
            record("user-hr", "user", "health", text="resting heart rate 58"),
            record("alice-route", "alice", "location", text="jogging route along the river"),
            record("alice-hr", "alice", "health", text="heart rate after jogging 150"),
            record("bob-park", "bob", "location", text="park loop"),
            record("bob-hr", "bob", "health", text="bob's heart rate"),
            record("carol-route", "carol", "location", text="carol's route"),
        ],
    )
    return vector_store


@pytest_asyncio.fixture
async def service(populated_store, relationship_store, gateway, fake_embedding):
    await relationship_store.save_settings(
        "alice",
        "user",
        RelationshipPrivacySettings(
            health=False, activities=False, diary=False, voice_notes=False, photos=False
        ),
    )
    await relationship_store.save_settings("bob", "user", RelationshipPrivacySettings())
    return RetrievalService(fake_embedding, populated_store, gateway, retry_backoff=0)


def ids(result):
    return {m.id for m in result.matches}


def test_embedding_dimension_must_match_semantic_index(index_backend, gateway):
    with pytest.raises(ConfigurationError):
        RetrievalService(FakeEmbedding(dimension=768), DualIndexVectorStore(index_backend), gateway)


@pytest.mark.asyncio
async def test_retrieve_own_only_returns_requester_records(service):
    result = await service.retrieve_own("user", "how did I sleep?")

    assert ids(result) == {"user-run", "user-hr"}
    assert all(m.owner_id == "user" for m in result.matches)


@pytest.mark.asyncio
async def test_retrieve_own_applies_filter(service):
    result = await service.retrieve_own("user", "runs", filter={"type": "location"})

    assert ids(result) == {"user-run"}


@pytest.mark.asyncio
async def test_jogging_route_scope(service):
    """Alice shares location only; the location scope is exactly the user and Alice."""
    result = await service.retrieve_for_circle(
        "user", "my jogging route with Alice", CircleSharingPolicy(), ["alice"], categories=["location"]
    )

    assert result.owner_scopes == {"location": ["user", "alice"]}
    assert ids(result) == {"user-run", "alice-route"}


@pytest.mark.asyncio
async def test_category_scoped_filtering(service, index_backend):
    """Alice (location only) and Bob (everything): never Alice's health."""
    result = await service.retrieve_for_circle(
        "user",
        "heart rate and routes",
        CircleSharingPolicy(),
        ["alice", "bob"],
        categories=["health", "location"],
    )

    assert result.owner_scopes["health"] == ["user", "bob"]
    assert result.owner_scopes["location"] == ["user", "alice", "bob"]
    assert ids(result) == {"user-run", "user-hr", "alice-route", "bob-park", "bob-hr"}
    assert "alice-hr" not in ids(result)

    # Diverging owner sets mean one query per set
    queries = [call for call in index_backend.calls if call[0] == "query"]
    assert len(queries) == 2


@pytest.mark.asyncio
async def test_identical_owner_sets_share_one_query(service, index_backend):
    await service.retrieve_for_circle(
        "user", "anything", CircleSharingPolicy(), ["bob"], categories=["health", "location"]
    )

    queries = [call for call in index_backend.calls if call[0] == "query"]
    assert len(queries) == 1


@pytest.mark.asyncio
async def test_unconfigured_counterpart_is_excluded(service):
    result = await service.retrieve_for_circle(
        "user", "routes", CircleSharingPolicy(), ["alice", "carol"], categories=["location"]
    )

    assert "carol" not in result.owner_scopes["location"]
    assert "carol-route" not in ids(result)
    assert [(e.counterpart_id, e.reason) for e in result.excluded] == [("carol", "not_configured")]


@pytest.mark.asyncio
async def test_failed_lookup_is_excluded(populated_store, relationship_store, fake_embedding):
    await relationship_store.save_settings("alice", "user", RelationshipPrivacySettings())
    await relationship_store.save_settings("bob", "user", RelationshipPrivacySettings())
    real_get = relationship_store.get_settings

    async def get_settings(owner_id, counterpart_id):
        if owner_id == "bob":
            raise ConnectionError("timeout")
        return await real_get(owner_id, counterpart_id)

    relationship_store.get_settings = get_settings
    service = RetrievalService(fake_embedding, populated_store, RelationshipSettingsGateway(relationship_store))

    result = await service.retrieve_for_circle(
        "user", "heart rate", CircleSharingPolicy(), ["alice", "bob"], categories=["health"]
    )

    assert result.owner_scopes["health"] == ["user", "alice"]
    assert ids(result) == {"user-hr", "alice-hr"}
    [excluded] = result.excluded
    assert excluded.counterpart_id == "bob"
    assert excluded.reason == "fetch_failed"


@pytest.mark.asyncio
async def test_circle_policy_limits_counterparts_not_requester(service):
    circle = CircleSharingPolicy(health=False)

    result = await service.retrieve_for_circle(
        "user", "heart rate", circle, ["bob"], categories=["health"]
    )

    assert result.owner_scopes == {"health": ["user"]}
    assert ids(result) == {"user-hr"}


@pytest.mark.asyncio
async def test_restricted_categories_are_reported(service):
    result = await service.retrieve_for_circle(
        "user", "anything", CircleSharingPolicy(), ["alice", "bob"], categories=["location"]
    )

    assert result.restricted == {
        "alice": ["health", "activities", "diary", "voice_notes", "photos"]
    }


@pytest.mark.asyncio
async def test_top_k_truncates_merged_results(service):
    result = await service.retrieve_for_circle(
        "user", "anything", CircleSharingPolicy(), ["alice", "bob"], top_k=2
    )

    assert len(result.matches) == 2


@pytest.mark.asyncio
async def test_query_is_embedded_once(service, fake_embedding):
    await service.retrieve_for_circle(
        "user", "heart rate", CircleSharingPolicy(), ["alice", "bob"], categories=["health", "location"]
    )

    assert fake_embedding.calls == ["heart rate"]


@pytest.mark.asyncio
async def test_invalid_arguments_fail_before_remote_calls(service, fake_embedding, index_backend):
    index_backend.calls.clear()

    with pytest.raises(ValidationError):
        await service.retrieve_for_circle("user", "  ", CircleSharingPolicy(), ["alice"])
    with pytest.raises(ValidationError):
        await service.retrieve_for_circle("user", "q", CircleSharingPolicy(), ["alice"], top_k=0)
    with pytest.raises(ValidationError):
        await service.retrieve_for_circle(
            "user", "q", CircleSharingPolicy(), ["alice"], categories=["finances"]
        )

    assert fake_embedding.calls == []
    assert index_backend.calls == []


@pytest.mark.asyncio
async def test_transient_embedding_failure_is_retried(service, fake_embedding):
    fake_embedding.failures = [RemoteCallError("503")]

    result = await service.retrieve_own("user", "heart rate")

    assert len(fake_embedding.calls) == 2
    assert result.matches


@pytest.mark.asyncio
async def test_embedding_failure_aborts_retrieval(service, fake_embedding):
    fake_embedding.failures = [RemoteCallError("token limit", retryable=False)]

    with pytest.raises(RemoteCallError):
        await service.retrieve_for_circle("user", "heart rate", CircleSharingPolicy(), ["bob"])


@pytest.mark.asyncio
async def test_query_failure_is_not_an_empty_result(service, index_backend):
    """A failing provider raises; it never looks like "nothing matched"."""
    index_backend.query = AsyncMock(side_effect=RemoteCallError("provider down"))

    with pytest.raises(RemoteCallError):
        await service.retrieve_for_circle("user", "heart rate", CircleSharingPolicy(), ["bob"])

    # first attempt plus two retries per concurrent query
    assert index_backend.query.await_count >= 3


@pytest.mark.asyncio
async def test_failed_query_cancels_sibling_queries(service, index_backend):
    calls = []
    cancelled = []

    async def query(namespace, vector, top_k, conditions):
        calls.append(namespace)
        if len(calls) == 1:
            raise RemoteCallError("malformed filter", retryable=False)
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(namespace)
            raise
        return []

    index_backend.query = query

    with pytest.raises(RemoteCallError):
        await service.retrieve_for_circle(
            "user", "heart rate", CircleSharingPolicy(), ["alice", "bob"],
            categories=["location", "health"],
        )
    await asyncio.sleep(0.01)

    assert len(calls) == 2
    assert len(cancelled) == 1


@pytest.mark.asyncio
async def test_resolve_owner_scopes_without_querying(service, fake_embedding, index_backend):
    index_backend.calls.clear()

    resolution = await service.resolve_owner_scopes(
        "user", CircleSharingPolicy(), ["alice", "bob", "carol"]
    )

    assert resolution.owner_scopes["location"] == ["user", "alice", "bob"]
    assert resolution.owner_scopes["health"] == ["user", "bob"]
    assert resolution.policies["alice"].location is True
    assert resolution.policies["alice"].health is False
    assert fake_embedding.calls == []
    assert index_backend.calls == []


@pytest.mark.asyncio
async def test_shared_activities_come_from_scoped_owners_only(vector_store, relationship_store, gateway, fake_embedding):
    await vector_store.upsert_batch(
        "semantic",
        [
            record("run", "carol", "shared_activity", participants=["carol", "alice"]),
            record("hike", "carol", "shared_activity", participants=["carol", "dave"]),
            record("climb", "dave", "shared_activity", participants=["dave", "user"]),
            record("pairs", "alice", "shared_activity", participants=["alice", "carol"]),
        ],
    )
    await relationship_store.save_settings("alice", "user", RelationshipPrivacySettings())
    service = RetrievalService(fake_embedding, vector_store, gateway)

    result = await service.retrieve_shared_activities(
        "user", "group runs", CircleSharingPolicy(), ["alice"]
    )

    assert result.owner_scopes == {"activities": ["user", "alice"]}
    assert ids(result) == {"pairs"}


@pytest.mark.asyncio
async def test_shared_activities_hidden_by_owner_are_not_returned(
    vector_store, relationship_store, gateway, fake_embedding
):
    await vector_store.upsert_batch(
        "semantic",
        [
            record("bob-run", "bob", "shared_activity", participants=["bob", "alice"]),
            record("alice-run", "alice", "shared_activity", participants=["alice", "bob"]),
        ],
    )
    await relationship_store.save_settings("bob", "user", RelationshipPrivacySettings(activities=False))
    await relationship_store.save_settings("alice", "user", RelationshipPrivacySettings())
    service = RetrievalService(fake_embedding, vector_store, gateway)

    result = await service.retrieve_shared_activities(
        "user", "runs", CircleSharingPolicy(), ["alice", "bob"]
    )

    assert result.owner_scopes == {"activities": ["user", "alice"]}
    assert result.restricted == {"bob": ["activities"]}
    assert ids(result) == {"alice-run"}


@pytest.mark.asyncio
async def test_retrieve_similar_photos_by_vector(vector_store, gateway, fake_embedding):
    await vector_store.upsert_batch(
        "visual",
        [
            VectorRecord(id="p1", values=unit_vector(512, 0), metadata={"owner_id": "user", "type": "photo"}),
            VectorRecord(id="p2", values=unit_vector(512, 0), metadata={"owner_id": "alice", "type": "photo"}),
        ],
    )
    service = RetrievalService(fake_embedding, vector_store, gateway)

    result = await service.retrieve_similar_photos("user", query_vector=unit_vector(512, 0))

    assert ids(result) == {"p1"}


@pytest.mark.asyncio
async def test_retrieve_similar_photos_by_text(vector_store, gateway, fake_embedding):
    await vector_store.upsert_one(
        "visual",
        VectorRecord(id="p1", values=unit_vector(512, 0), metadata={"owner_id": "user", "type": "photo"}),
    )
    visual = FakeEmbedding(dimension=512)
    service = RetrievalService(fake_embedding, vector_store, gateway, visual_embedding=visual)

    result = await service.retrieve_similar_photos("user", query_text="sunset at the beach")

    assert ids(result) == {"p1"}
    assert visual.calls == ["sunset at the beach"]
    assert fake_embedding.calls == []


@pytest.mark.asyncio
async def test_retrieve_similar_photos_argument_errors(vector_store, gateway, fake_embedding):
    service = RetrievalService(fake_embedding, vector_store, gateway)

    with pytest.raises(ValidationError):
        await service.retrieve_similar_photos("user")
    with pytest.raises(ValidationError):
        await service.retrieve_similar_photos("user", query_vector=unit_vector(512, 0), query_text="x")
    with pytest.raises(ConfigurationError):
        await service.retrieve_similar_photos("user", query_text="sunset")


def test_merge_dedupes_sorts_and_truncates():
    merged = _merge_matches(
        [
            [VectorMatch(id="a", score=0.5), VectorMatch(id="b", score=0.9)],
            [VectorMatch(id="a", score=0.7), VectorMatch(id="c", score=0.1)],
        ],
        top_k=2,
    )

    assert [(m.id, m.score) for m in merged] == [("b", 0.9), ("a", 0.7)]
