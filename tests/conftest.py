"""Shared test fixtures."""

from __future__ import annotations

import pytest

from backend.config import Settings
from rag_pipeline.embedder import EmbeddingGateway
from rag_pipeline.session_cache import CacheMode, RedisSessionBackend, SessionCache
from tests.fakes import FakeRedisClient, KeywordEmbeddingProvider


@pytest.fixture()
def fake_redis() -> FakeRedisClient:
    return FakeRedisClient()


@pytest.fixture()
def redis_cache(fake_redis) -> SessionCache:
    return SessionCache(RedisSessionBackend(fake_redis), mode=CacheMode.LENIENT, ttl_seconds=60)


@pytest.fixture()
def memory_cache() -> SessionCache:
    """Lenient cache with no Redis configured: served entirely in-process."""
    return SessionCache(None, mode=CacheMode.LENIENT, ttl_seconds=60)


@pytest.fixture()
def keyword_gateway() -> EmbeddingGateway:
    return EmbeddingGateway([KeywordEmbeddingProvider()])


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(redis_url="", environment="development", chat_timeout_ms=2000)
