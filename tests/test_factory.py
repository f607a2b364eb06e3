"""Tests for wiring a RetrievalService from settings."""

import pytest

from circle_recall.config import RecallSettings
from circle_recall.errors import ConfigurationError
from circle_recall.factory import build_retrieval_service
from circle_recall.retrieval_service import RetrievalService


def local_settings(**overrides):
    values = dict(
        OPENAI_API_KEY="sk-test-key-for-testing",
        QDRANT_URL=":memory:",
        DATABASE_URL="sqlite://",
        ENABLE_VISUAL_EMBEDDING=False,
    )
    values.update(overrides)
    return RecallSettings(_env_file=None, **values)


@pytest.mark.asyncio
async def test_builds_service_against_local_backends():
    service = await build_retrieval_service(local_settings())

    assert isinstance(service, RetrievalService)
    assert service.embedding.dimension == 1024
    assert service.visual_embedding is None
    assert service.gateway.max_concurrency == 50
    assert service.max_retries == 2


@pytest.mark.asyncio
async def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        await build_retrieval_service(local_settings(OPENAI_API_KEY=None))
