from __future__ import annotations

import asyncio
import logging
import random

import pytest

from rag_pipeline.embedder import HASH_DIMENSIONS, EmbeddingGateway, hash_embedding
from rag_pipeline.knowledge_base import ingest_articles, scrape_news, seed_knowledge_base
from rag_pipeline.models import Document, document_id
from rag_pipeline.vector_store import VectorStore, cosine_similarity


class _FixedProvider:
    """Returns a pre-assigned vector per text (default: [1, 0])."""

    name = "fixed"
    available = True

    def __init__(self, vectors=None, delay=0.0):
        self.vectors = vectors or {}
        self.delay = delay

    async def embed(self, text):
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.vectors.get(text, [1.0, 0.0])


def _doc(title: str, content: str = "body", url: str | None = None) -> Document:
    url = url or f"https://example.com/{title.lower().replace(' ', '-')}"
    return Document(id=document_id(url), title=title, content=content, url=url)


# ---------------------------------------------------------------------------
# Cosine similarity
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "a, b",
    [([], [1.0]), ([1.0], []), ([], []), (None, [1.0]), ([1.0, 2.0], [1.0]), ([0.0, 0.0], [1.0, 1.0])],
)
def test_cosine_is_zero_for_degenerate_inputs(a, b):
    assert cosine_similarity(a, b) == 0.0


def test_cosine_known_values():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_stays_in_range():
    rng = random.Random(7)
    for _ in range(200):
        n = rng.randint(1, 16)
        a = [rng.uniform(-5, 5) for _ in range(n)]
        b = [rng.uniform(-5, 5) for _ in range(n)]
        assert -1.0 <= cosine_similarity(a, b) <= 1.0


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

async def test_query_returns_at_most_k_sorted_by_score():
    vectors = {
        "A. body": [1.0, 0.0],
        "B. body": [0.0, 1.0],
        "C. body": [1.0, 1.0],
        "D. body": [-1.0, 0.0],
        "question": [1.0, 0.1],
    }
    store = VectorStore(EmbeddingGateway([_FixedProvider(vectors)]))
    await store.insert_many([_doc("A"), _doc("B"), _doc("C"), _doc("D")])

    results = await store.query("question", top_k=2)

    assert [p.title for p in results] == ["A", "C"]
    scores = [p.score for p in (await store.query("question", top_k=10))]
    assert len(scores) == 4
    assert scores == sorted(scores, reverse=True)


async def test_default_top_k_is_three(keyword_gateway):
    store = VectorStore(keyword_gateway)
    await seed_knowledge_base(store)

    assert len(await store.query("anything")) == 3


async def test_ties_keep_insertion_order():
    store = VectorStore(EmbeddingGateway([_FixedProvider()]))
    await store.insert_many([_doc("first"), _doc("second"), _doc("third")])

    results = await store.query("same vector for everyone", top_k=3)

    assert [p.title for p in results] == ["first", "second", "third"]
    assert len({p.score for p in results}) == 1


async def test_query_on_empty_store_returns_nothing(keyword_gateway):
    assert await VectorStore(keyword_gateway).query("climate") == []


async def test_hung_provider_falls_back_to_hash_vector_with_default_budgets():
    store = VectorStore(EmbeddingGateway([_FixedProvider(delay=3.0)]))
    doc = _doc("Hung", "provider never answers")

    record = await store.insert(doc)

    assert len(record.vector) == HASH_DIMENSIONS
    assert record.vector == hash_embedding("Hung. provider never answers")


async def test_store_budget_expiry_uses_hash_vector():
    store = VectorStore(EmbeddingGateway([_FixedProvider(delay=2.0)], timeout_ms=10_000), embed_timeout_ms=20)
    await store.insert(_doc("only", "body"))

    results = await store.query("only. body")

    assert store.records[0].vector == hash_embedding("only. body")
    assert results[0].score == pytest.approx(1.0)


async def test_climate_question_ranks_climate_article_first(keyword_gateway):
    store = VectorStore(keyword_gateway)
    await seed_knowledge_base(store)

    results = await store.query("What happened at the climate summit?")

    assert results[0].url == "https://example.com/climate-summit"
    assert results[0].score == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Insert
# ---------------------------------------------------------------------------

async def test_reingesting_same_url_replaces_in_place(keyword_gateway):
    store = VectorStore(keyword_gateway)
    articles = await scrape_news()
    await ingest_articles(store, articles)
    await ingest_articles(store, [{**articles[0], "title": "Climate Summit (updated)"}])

    assert len(store) == 5
    first = store.records[0]
    assert first.id == document_id("https://example.com/climate-summit")
    assert first.payload.title == "Climate Summit (updated)"


async def test_dimension_mismatch_is_flagged(caplog):
    vectors = {"A. body": [1.0, 0.0], "B. body": [1.0, 0.0, 0.0]}
    store = VectorStore(EmbeddingGateway([_FixedProvider(vectors)]))

    with caplog.at_level(logging.WARNING, logger="rag_pipeline.vector_store"):
        await store.insert_many([_doc("A"), _doc("B")])

    assert "dimension mismatch" in caplog.text
    assert len(store) == 2


def test_document_id_is_md5_of_url():
    assert document_id("https://example.com/climate-summit") == document_id("https://example.com/climate-summit")
    assert len(document_id("https://example.com/x")) == 32
