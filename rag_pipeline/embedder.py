"""
embedder.py
===========
Convert text strings into dense embedding vectors.

Providers are tried in order; the first that answers wins:
  1. primary remote provider   (Jina, or Hugging Face when EMBEDDINGS_PROVIDER=hf)
  2. secondary remote provider (the other one)
  3. deterministic hash vectors (no network, always available)

A remote provider is only consulted when its API key is configured.  Any
network error, non-2xx status or unexpected payload shape moves on to the
next provider; callers never see a provider failure.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, List, Optional, Protocol, Sequence

import httpx
import numpy as np

from rag_pipeline.timeout import guard

logger = logging.getLogger(__name__)

Vector = List[float]

HASH_DIMENSIONS = 64
DEFAULT_PROVIDER_TIMEOUT_MS = 1000

_JINA_URL = "https://api.jina.ai/v1/embeddings"
_HF_URL_TEMPLATE = "https://api-inference.huggingface.co/models/{model}"


class EmbeddingResponseError(ValueError):
    """Raised when a provider answers with a payload we cannot interpret."""


class EmbeddingProvider(Protocol):
    """Embedding backend interface."""

    name: str

    @property
    def available(self) -> bool:
        """True when the provider is configured and may be called."""
        ...

    async def embed(self, text: str) -> Vector:
        """Encode *text* into a single vector."""
        ...


def mean_pool(vectors: Sequence[Sequence[float]]) -> Vector:
    """Average equal-length vectors component-wise."""
    if not vectors:
        return []
    try:
        matrix = np.asarray(vectors, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise EmbeddingResponseError("Token vectors have unequal lengths") from exc
    if matrix.ndim != 2:
        raise EmbeddingResponseError("Expected a list of token vectors")
    return np.mean(matrix, axis=0).tolist()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Remote providers
# ---------------------------------------------------------------------------

class _RemoteProvider:
    name = "remote"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_ms: float = DEFAULT_PROVIDER_TIMEOUT_MS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_ms = timeout_ms
        self._client = client

    @property
    def available(self) -> bool:
        return bool(self.api_key) and not self.api_key.startswith("your_")

    async def _post(self, url: str, body: dict) -> Any:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type":  "application/json",
        }
        timeout = self.timeout_ms / 1000.0
        if self._client is not None:
            response = await self._client.post(url, json=body, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(url, json=body, headers=headers)
        response.raise_for_status()
        return response.json()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


class JinaProvider(_RemoteProvider):
    name = "jina"

    async def embed(self, text: str) -> Vector:
        data = await self._post(_JINA_URL, {"model": self.model, "input": [text]})
        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EmbeddingResponseError("Unexpected Jina embeddings response shape") from exc
        if not isinstance(vector, list) or not all(_is_number(v) for v in vector):
            raise EmbeddingResponseError("Unexpected Jina embeddings response shape")
        return [float(v) for v in vector]


class HuggingFaceProvider(_RemoteProvider):
    name = "hf"

    async def embed(self, text: str) -> Vector:
        data = await self._post(_HF_URL_TEMPLATE.format(model=self.model), {"inputs": text})
        return _parse_hf_payload(data)


def _parse_hf_payload(data: Any) -> Vector:
    """
    The feature-extraction endpoint answers in one of three shapes:
      [f, f, ...]                 sentence embedding
      [[f, ...], ...]             one vector (used as-is) or token vectors (pooled)
      [[[f, ...], ...]]           batch of one, token vectors (pooled)
    """
    if isinstance(data, list) and data:
        head = data[0]
        if _is_number(head) and all(_is_number(v) for v in data):
            return [float(v) for v in data]
        if isinstance(head, list) and head and _is_number(head[0]):
            if len(data) == 1:
                return [float(v) for v in head]
            return mean_pool(data)
        if isinstance(head, list) and head and isinstance(head[0], list):
            return mean_pool(head)
    raise EmbeddingResponseError("Unexpected HF embeddings response shape")


# ---------------------------------------------------------------------------
# Deterministic fallback
# ---------------------------------------------------------------------------

class HashEmbeddingProvider:
    """SHA-512 digest bytes mapped onto [-1, 1): same text, same vector."""

    name = "hash"
    available = True

    async def embed(self, text: str) -> Vector:
        return hash_embedding(text)


def hash_embedding(text: str) -> Vector:
    digest = hashlib.sha512(text.encode("utf-8")).digest()
    return [(b - 128) / 128 for b in digest[:HASH_DIMENSIONS]]


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class EmbeddingGateway:
    """Ordered provider chain; first success wins, hash vectors last."""

    def __init__(self, providers: Sequence[EmbeddingProvider], timeout_ms: float = DEFAULT_PROVIDER_TIMEOUT_MS):
        self.providers = list(providers)
        self.timeout_ms = timeout_ms
        self._fallback = HashEmbeddingProvider()

    @property
    def active_providers(self) -> List[str]:
        return [p.name for p in self.providers if p.available] + [self._fallback.name]

    async def embed(self, text: str) -> Vector:
        """Return an embedding for *text*; never raises for provider failures."""
        for provider in self.providers:
            if not provider.available:
                continue
            try:
                vector = await guard(
                    provider.embed(text), self.timeout_ms, None, label=f"{provider.name} embedding"
                )
            except Exception as exc:
                logger.warning("%s embedder failed (%s) — trying next provider.", provider.name, exc)
                continue
            if not vector:
                logger.warning("%s embedder timed out or returned nothing — trying next provider.", provider.name)
                continue
            return vector

        return await self._fallback.embed(text)


def build_gateway(
    provider: str = "",
    jina_api_key: str = "",
    jina_model: str = "jina-embeddings-v2-base-en",
    hf_api_key: str = "",
    hf_model: str = "sentence-transformers/all-MiniLM-L6-v2",
    timeout_ms: float = DEFAULT_PROVIDER_TIMEOUT_MS,
) -> EmbeddingGateway:
    """Build the provider chain from configuration."""
    jina = JinaProvider(jina_api_key, jina_model, timeout_ms=timeout_ms)
    hf = HuggingFaceProvider(hf_api_key, hf_model, timeout_ms=timeout_ms)

    ordered: List[EmbeddingProvider] = [hf, jina] if provider.lower() == "hf" else [jina, hf]
    gateway = EmbeddingGateway(ordered, timeout_ms=timeout_ms)
    logger.info("Embedder chain: %s", " -> ".join(gateway.active_providers))
    return gateway
