from __future__ import annotations

import asyncio
import time

import pytest

from rag_pipeline.knowledge_base import seed_knowledge_base
from rag_pipeline.orchestrator import (
    TIMEOUT_RESPONSE,
    ChatPipeline,
    Stage,
    StageFailure,
)
from rag_pipeline.session_cache import CacheMode, SessionCache
from rag_pipeline.vector_store import VectorStore
from tests.fakes import EchoGenerator


class _FailingGenerator:
    async def generate(self, query, passages):
        raise RuntimeError("model exploded")


class _SlowGenerator:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.cancelled = False

    async def generate(self, query, passages):
        try:
            await asyncio.sleep(self.seconds)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return "too late"


class _FailingStore:
    async def query(self, text, top_k=3):
        raise RuntimeError("index corrupted")


class _SaveFailingCache(SessionCache):
    async def save(self, session_id, history):
        raise ConnectionError("write refused")


@pytest.fixture()
async def store(keyword_gateway) -> VectorStore:
    store = VectorStore(keyword_gateway)
    await seed_knowledge_base(store)
    return store


async def test_successful_turn_appends_user_then_bot(memory_cache, store):
    generator = EchoGenerator()
    pipeline = ChatPipeline(memory_cache, store, generator)

    result = await pipeline.run("s1", "What happened at the climate summit?")

    assert result.response == "Answer to: What happened at the climate summit?"
    assert result.timed_out is False
    assert "https://example.com/climate-summit" in [p.url for p in result.passages]

    history = await memory_cache.load("s1")
    assert [m.type for m in history] == ["user", "bot"]
    assert history[0].content == "What happened at the climate summit?"
    assert history[1].content == result.response
    assert [p.url for p in history[1].passages] == [p.url for p in result.passages]


async def test_second_turn_extends_existing_history(memory_cache, store):
    pipeline = ChatPipeline(memory_cache, store, EchoGenerator())

    await pipeline.run("s1", "first question")
    await pipeline.run("s1", "second question")

    history = await memory_cache.load("s1")
    assert [m.content for m in history if m.type == "user"] == ["first question", "second question"]
    assert len(history) == 4


async def test_generator_receives_retrieved_passages(memory_cache, store):
    generator = EchoGenerator()
    await ChatPipeline(memory_cache, store, generator, top_k=2).run("s1", "space crew")

    query, passages = generator.calls[0]
    assert query == "space crew"
    assert len(passages) == 2
    assert passages[0].url == "https://example.com/space-station"


async def test_history_stage_failure_is_tagged(store):
    strict_without_redis = SessionCache(None, mode=CacheMode.STRICT)
    pipeline = ChatPipeline(strict_without_redis, store, EchoGenerator())

    with pytest.raises(StageFailure) as info:
        await pipeline.run("s1", "hello")

    assert info.value.stage is Stage.LOAD_HISTORY
    assert info.value.tag == "history_failed"


async def test_retrieval_stage_failure_is_tagged(memory_cache):
    generator = EchoGenerator()
    pipeline = ChatPipeline(memory_cache, _FailingStore(), generator)

    with pytest.raises(StageFailure) as info:
        await pipeline.run("s1", "hello")

    assert info.value.tag == "retrieval_failed"
    assert generator.calls == []
    assert await memory_cache.load("s1") == []


async def test_llm_stage_failure_is_tagged(memory_cache, store):
    pipeline = ChatPipeline(memory_cache, store, _FailingGenerator())

    with pytest.raises(StageFailure) as info:
        await pipeline.run("s1", "hello")

    assert info.value.tag == "llm_failed"
    assert isinstance(info.value.cause, RuntimeError)


async def test_save_failure_loses_whole_turn_but_keeps_earlier_history(store):
    cache = SessionCache(None, mode=CacheMode.LENIENT, ttl_seconds=60)
    await ChatPipeline(cache, store, EchoGenerator()).run("s1", "first question")

    broken = _SaveFailingCache(None, mode=CacheMode.LENIENT, ttl_seconds=60, fallback=cache.fallback)
    with pytest.raises(StageFailure) as info:
        await ChatPipeline(broken, store, EchoGenerator()).run("s1", "second question")

    assert info.value.tag == "save_failed"
    history = await cache.load("s1")
    assert [m.content for m in history if m.type == "user"] == ["first question"]
    assert len(history) == 2


async def test_overall_deadline_returns_fallback_and_cancels(memory_cache, store):
    generator = _SlowGenerator(5)
    pipeline = ChatPipeline(memory_cache, store, generator, deadline_ms=100)

    start = time.perf_counter()
    result = await pipeline.run("s1", "hello")
    elapsed = time.perf_counter() - start

    assert result.response == TIMEOUT_RESPONSE
    assert result.passages == []
    assert result.timed_out is True
    assert elapsed < 1.0
    assert generator.cancelled is True
    assert await memory_cache.load("s1") == []


async def test_timeout_fallback_is_fresh_per_request(memory_cache, store):
    pipeline = ChatPipeline(memory_cache, store, _SlowGenerator(5), deadline_ms=20)

    first = await pipeline.run("s1", "a")
    first.passages.append("mutated")
    second = await pipeline.run("s1", "b")

    assert second.passages == []


def test_stage_failure_tags():
    assert [s.failure_tag for s in (Stage.LOAD_HISTORY, Stage.RETRIEVE, Stage.GENERATE, Stage.SAVE_HISTORY)] == [
        "history_failed", "retrieval_failed", "llm_failed", "save_failed",
    ]
