"""
models.py
=========
Pydantic v2 data models shared by the retrieval, session and pipeline
layers.

Field names are serialised exactly as they appear here (``publishedAt``
included) so that histories written to Redis keep the same JSON shape the
HTTP clients read back.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import UTC, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def document_id(url: str) -> str:
    """Content-derived id: re-ingesting the same URL yields the same id."""
    return hashlib.md5(url.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Corpus
# ---------------------------------------------------------------------------

class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str
    url: str
    publishedAt: str = Field(default_factory=_utc_now)

    @classmethod
    def from_article(cls, article: dict) -> "Document":
        return cls(
            id          = document_id(article["url"]),
            title       = article["title"],
            content     = article["content"],
            url         = article["url"],
            publishedAt = article.get("publishedAt") or _utc_now(),
        )


class VectorRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    vector: List[float] = Field(default_factory=list)
    payload: Document


class ScoredPassage(BaseModel):
    title: str
    content: str
    url: str
    score: float


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class SessionMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: Literal["user", "bot"]
    content: str
    timestamp: str = Field(default_factory=_utc_now)
    passages: Optional[List[ScoredPassage]] = None


SessionHistory = List[SessionMessage]

history_adapter: TypeAdapter[SessionHistory] = TypeAdapter(SessionHistory)


def dump_history(history: SessionHistory) -> str:
    """Serialise a history to the JSON array stored under ``session:<id>``."""
    return history_adapter.dump_json(history, exclude_none=True).decode("utf-8")


def parse_history(raw: str | bytes) -> SessionHistory:
    """Parse a stored history; raises ``pydantic.ValidationError`` on bad payloads."""
    return history_adapter.validate_json(raw)
