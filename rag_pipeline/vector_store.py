"""
vector_store.py
===============
In-memory vector store for the news corpus.

Documents are embedded on insert and kept as immutable VectorRecords in
insertion order.  Queries are a linear cosine-similarity scan over every
record; ties keep insertion order (Python's sort is stable).  Every record
and query carries a vector: past the store's embedding budget the
deterministic hash vector is used.

The store is an explicit object created by the application factory and
passed to whoever needs it; there is no module-level singleton.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from rag_pipeline.embedder import EmbeddingGateway, hash_embedding
from rag_pipeline.models import Document, ScoredPassage, VectorRecord
from rag_pipeline.timeout import guard

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
EMBED_TIMEOUT_MS = 1500


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """
    Cosine similarity in [-1, 1].

    0.0 when either vector is missing or empty, when the lengths differ,
    or when either vector has zero norm.
    """
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb)) / (na * nb)
    return max(min(similarity, 1.0), -1.0)


class VectorStore:
    """
    Append-only store of embedded documents.

    Usage:
        store = VectorStore(gateway)
        await store.insert(document)
        passages = await store.query("climate summit", top_k=3)
    """

    def __init__(self, gateway: EmbeddingGateway, embed_timeout_ms: float = EMBED_TIMEOUT_MS):
        self.gateway = gateway
        self.embed_timeout_ms = embed_timeout_ms
        self._records: List[VectorRecord] = []
        self._index_by_id: Dict[str, int] = {}
        self._dimensions: Optional[int] = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _embed(self, text: str) -> List[float]:
        vector = await guard(self.gateway.embed(text), self.embed_timeout_ms, None, label="embedding")
        if vector is None:
            logger.warning(
                "Embedding exceeded %.0fms; using hash vector instead.", self.embed_timeout_ms,
            )
            return hash_embedding(text)
        return vector

    def _check_dimensions(self, vector: List[float], context: str) -> None:
        """Warn (and only warn) when vectors of different widths end up side by side."""
        if not vector:
            return
        if self._dimensions is None:
            self._dimensions = len(vector)
        elif len(vector) != self._dimensions:
            logger.warning(
                "Embedding dimension mismatch on %s: got %d, store holds %d-d vectors. "
                "Similarity against mismatched records scores 0.",
                context, len(vector), self._dimensions,
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def insert(self, document: Document) -> VectorRecord:
        """Embed *document* and store it; the same id replaces the earlier record in place."""
        vector = await self._embed(f"{document.title}. {document.content}")
        self._check_dimensions(vector, f"insert of {document.url}")

        record = VectorRecord(id=document.id, vector=vector, payload=document)
        if document.id in self._index_by_id:
            self._records[self._index_by_id[document.id]] = record
        else:
            self._index_by_id[document.id] = len(self._records)
            self._records.append(record)
        return record

    async def insert_many(self, documents: Iterable[Document]) -> int:
        count = 0
        for document in documents:
            await self.insert(document)
            count += 1
        return count

    async def query(self, text: str, top_k: int = DEFAULT_TOP_K) -> List[ScoredPassage]:
        """
        Return up to *top_k* passages ordered by descending cosine score.

        An empty store yields ``[]``.  An embedding that outlives the store's
        budget is replaced by the hash vector, so a query never raises.
        """
        if top_k <= 0 or not self._records:
            return []

        query_vec = await self._embed(text)
        self._check_dimensions(query_vec, "query")

        scored = [
            (cosine_similarity(query_vec, record.vector), record.payload)
            for record in self._records
        ]
        scored.sort(key=lambda item: item[0], reverse=True)

        return [
            ScoredPassage(title=doc.title, content=doc.content, url=doc.url, score=score)
            for score, doc in scored[:top_k]
        ]

    def count(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> List[VectorRecord]:
        return list(self._records)
