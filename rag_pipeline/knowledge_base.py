"""
knowledge_base.py
=================
Seeds the vector store with the sample news corpus at start-up.

``scrape_news`` is a stand-in for a real feed reader: it returns a fixed
set of articles stamped with the current time.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Dict, Iterable, List

from rag_pipeline.models import Document
from rag_pipeline.vector_store import VectorStore

logger = logging.getLogger(__name__)


_SAMPLE_ARTICLES: List[Dict[str, str]] = [
    {
        "title":   "Global Climate Summit Reaches Historic Agreement",
        "content": (
            "World leaders have reached a groundbreaking agreement on climate action, setting "
            "ambitious targets for carbon emission reductions by 2030. The summit, held in Geneva, "
            "saw unprecedented cooperation between major economies."
        ),
        "url":     "https://example.com/climate-summit",
    },
    {
        "title":   "Tech Giants Announce Major AI Safety Initiative",
        "content": (
            "Leading technology companies have announced a joint initiative to develop safer AI "
            "systems. The collaboration includes new safety standards and ethical guidelines for "
            "AI development."
        ),
        "url":     "https://example.com/ai-safety",
    },
    {
        "title":   "Global Economy Shows Signs of Recovery",
        "content": (
            "Economic indicators suggest a strong recovery across major markets. GDP growth has "
            "exceeded expectations in several countries, signaling renewed confidence in global trade."
        ),
        "url":     "https://example.com/economy-recovery",
    },
    {
        "title":   "Breakthrough in Renewable Energy Storage",
        "content": (
            "Scientists have developed a revolutionary battery technology that could store renewable "
            "energy for months. This breakthrough could solve one of the biggest challenges in clean "
            "energy adoption."
        ),
        "url":     "https://example.com/energy-storage",
    },
    {
        "title":   "International Space Station Welcomes New Crew",
        "content": (
            "A new crew of astronauts has successfully docked with the International Space Station. "
            "The mission includes groundbreaking experiments in microgravity research."
        ),
        "url":     "https://example.com/space-station",
    },
]


async def scrape_news() -> List[Dict[str, str]]:
    published_at = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return [{**article, "publishedAt": published_at} for article in _SAMPLE_ARTICLES]


async def ingest_articles(store: VectorStore, articles: Iterable[Dict[str, str]]) -> int:
    """Embed and store *articles*; returns how many were ingested."""
    documents = [Document.from_article(article) for article in articles]
    return await store.insert_many(documents)


async def seed_knowledge_base(store: VectorStore) -> int:
    articles = await scrape_news()
    count = await ingest_articles(store, articles)
    logger.info("Knowledge base seeded with %d articles (%d records in store).", count, len(store))
    return count
