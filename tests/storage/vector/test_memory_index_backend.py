"""
Unit tests for the in-memory vector index backend.

Tests namespaces, cosine search, filtering and deletion.
"""

import pytest

from circle_recall.errors import ConfigurationError
from circle_recall.models import VectorRecord
from circle_recall.storage.vector.filters import owner_conditions, parse_filter
from circle_recall.storage.vector.memory import InMemoryIndexBackend


def record(record_id, values, owner="u1", **metadata):
    return VectorRecord(id=record_id, values=values, metadata={"owner_id": owner, **metadata})


@pytest.mark.asyncio
async def test_ensure_namespace_dimension_mismatch():
    backend = InMemoryIndexBackend()
    await backend.ensure_namespace("ns", 3)
    await backend.ensure_namespace("ns", 3)

    with pytest.raises(ConfigurationError):
        await backend.ensure_namespace("ns", 4)


@pytest.mark.asyncio
async def test_unknown_namespace_raises():
    backend = InMemoryIndexBackend()

    with pytest.raises(ConfigurationError):
        await backend.query("missing", [1.0], 1, [])


@pytest.mark.asyncio
async def test_query_orders_by_similarity():
    backend = InMemoryIndexBackend()
    await backend.ensure_namespace("ns", 3)
    await backend.upsert(
        "ns",
        [
            record("far", [0.0, 1.0, 0.0]),
            record("near", [0.9, 0.1, 0.0]),
            record("exact", [1.0, 0.0, 0.0]),
        ],
    )

    matches = await backend.query("ns", [1.0, 0.0, 0.0], 2, [])

    assert [m.id for m in matches] == ["exact", "near"]
    assert matches[0].score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_query_applies_conditions():
    backend = InMemoryIndexBackend()
    await backend.ensure_namespace("ns", 3)
    await backend.upsert(
        "ns",
        [
            record("mine", [1.0, 0.0, 0.0], owner="u1", type="health"),
            record("theirs", [1.0, 0.0, 0.0], owner="a", type="health"),
            record("mine-loc", [1.0, 0.0, 0.0], owner="u1", type="location"),
        ],
    )

    conditions = owner_conditions("u1") + parse_filter({"type": "health"})
    matches = await backend.query("ns", [1.0, 0.0, 0.0], 10, conditions)

    assert [m.id for m in matches] == ["mine"]


@pytest.mark.asyncio
async def test_upsert_replaces_by_id():
    backend = InMemoryIndexBackend()
    await backend.ensure_namespace("ns", 3)
    await backend.upsert("ns", [record("r1", [1.0, 0.0, 0.0], note="old")])
    await backend.upsert("ns", [record("r1", [0.0, 1.0, 0.0], note="new")])

    fetched = await backend.fetch("ns", ["r1", "missing"])

    assert backend.count("ns") == 1
    assert list(fetched) == ["r1"]
    assert fetched["r1"].metadata["note"] == "new"


@pytest.mark.asyncio
async def test_delete_ids_and_where():
    backend = InMemoryIndexBackend()
    await backend.ensure_namespace("ns", 3)
    await backend.upsert(
        "ns",
        [
            record("r1", [1.0, 0.0, 0.0], owner="u1"),
            record("r2", [1.0, 0.0, 0.0], owner="u1"),
            record("r3", [1.0, 0.0, 0.0], owner="a"),
        ],
    )

    await backend.delete_ids("ns", ["r1"])
    assert backend.count("ns") == 2

    await backend.delete_where("ns", owner_conditions("u1"))
    assert backend.count("ns") == 1
    assert list(await backend.fetch("ns", ["r3"])) == ["r3"]


@pytest.mark.asyncio
async def test_calls_are_recorded():
    backend = InMemoryIndexBackend()
    await backend.ensure_namespace("ns", 3)
    await backend.upsert("ns", [record("r1", [1.0, 0.0, 0.0])])
    await backend.query("ns", [1.0, 0.0, 0.0], 1, [])

    assert [call[0] for call in backend.calls] == ["upsert", "query"]
    assert backend.calls[0] == ("upsert", "ns", ["r1"])
