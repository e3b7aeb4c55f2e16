"""
llm_engine.py
=============
Answer generation over retrieved news passages.

Talks to Gemini through its OpenAI-compatible endpoint (any
OpenAI-compatible base URL works).  The model is confined to the provided
article context.

Generation never fails the chat request on its own: without a key, on a
client error, or past its deadline it returns the retrieved context with a
short explanatory header instead of an answer.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from rag_pipeline.models import ScoredPassage
from rag_pipeline.timeout import guard

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_TIMEOUT_MS = 10000


class LLMUnavailableError(RuntimeError):
    """Raised when the remote LLM answers with nothing usable."""


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------

_PROMPT_TEMPLATE = """Based on the following news articles, please answer the user's question. If the information is not available in the provided articles, please say so.

Context:
{context}

Question: {query}

Please provide a comprehensive answer based on the available information and cite relevant sources when possible."""


def build_context(passages: Sequence[ScoredPassage]) -> str:
    return "\n\n".join(
        f"Title: {p.title}\nContent: {p.content}\nURL: {p.url}" for p in passages
    )


def build_prompt(query: str, passages: Sequence[ScoredPassage]) -> str:
    return _PROMPT_TEMPLATE.format(context=build_context(passages), query=query)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class AnswerGenerator:
    """
    RAG answer generator.

    Parameters
    ----------
    api_key    : Gemini / OpenAI-compatible API key; empty disables the LLM
    model      : chat model id
    base_url   : OpenAI-compatible endpoint
    timeout_ms : deadline for one completion
    expose_errors : append error detail to the fallback text (non-production)
    client     : pre-built ``openai.AsyncOpenAI`` (tests)
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        expose_errors: bool = True,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout_ms = timeout_ms
        self.expose_errors = expose_errors
        self._client = client

    @property
    def enabled(self) -> bool:
        if self._client is not None:
            return True
        return bool(self.api_key) and not self.api_key.startswith("your_")

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI  # type: ignore

            self._client = AsyncOpenAI(
                base_url = self.base_url,
                api_key  = self.api_key,
                timeout  = self.timeout_ms / 1000.0,
            )
        return self._client

    async def generate(self, query: str, passages: Sequence[ScoredPassage]) -> str:
        """Return an answer for *query* grounded in *passages*."""
        context = build_context(passages)

        if not self.enabled:
            return f"No LLM key configured. Here's what I found based on retrieval:\n\n{context}"

        prompt = build_prompt(query, passages)
        timed_out = (
            f"Timed out generating answer. Here's retrieved context instead:\n\n{context}"
        )
        return await guard(self._complete(prompt, context), self.timeout_ms, timed_out, label="LLM call")

    async def _complete(self, prompt: str, context: str) -> str:
        try:
            completion = await self._get_client().chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.3,
            )
            text = _completion_text(completion)
            if not text:
                raise LLMUnavailableError(f"{self.model} returned an empty response")
            logger.info("LLM answer generated with %s.", self.model)
            return text
        except Exception as exc:
            logger.error("LLM call failed: %s", exc)
            base = f"LLM unavailable. Here's retrieved context instead:\n\n{context}"
            if self.expose_errors:
                return f"{base}\n\n(details: {str(exc) or type(exc).__name__})"
            return base


def _completion_text(completion: Any) -> str:
    choices: List[Any] = getattr(completion, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return str(content).strip() if content else ""
