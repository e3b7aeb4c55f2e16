"""
orchestrator.py
===============
The chat pipeline: one user turn, four stages, one deadline.

  1. LOAD_HISTORY  — read the session history from the session cache
  2. RETRIEVE      — top-K passages for the user message
  3. GENERATE      — answer from the generator
  4. SAVE_HISTORY  — write back history + user and bot messages

Stages run strictly in order.  A stage that raises aborts the rest and is
re-raised as ``StageFailure`` carrying the stage tag (``history_failed``,
``retrieval_failed``, ``llm_failed``, ``save_failed``).

The whole sequence runs under one overall deadline.  If it elapses, the
in-flight stage is cancelled and the caller receives the timeout fallback
(not an error).  New messages live only in the in-memory history until
SAVE_HISTORY completes, so an aborted turn is lost as a whole and earlier
history is never partially overwritten.

Concurrent turns for the same session are not serialised: each loads and
saves independently and the last save wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Protocol, Sequence, TypeVar

from rag_pipeline.models import ScoredPassage, SessionHistory, SessionMessage
from rag_pipeline.session_cache import SessionCache
from rag_pipeline.timeout import guard
from rag_pipeline.vector_store import DEFAULT_TOP_K, VectorStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEADLINE_MS = 10000
TIMEOUT_RESPONSE = "Timed out processing your request. Please try again in a moment."


class Stage(str, Enum):
    LOAD_HISTORY = "load_history"
    RETRIEVE = "retrieve"
    GENERATE = "generate"
    SAVE_HISTORY = "save_history"
    DONE = "done"

    @property
    def failure_tag(self) -> str:
        return _FAILURE_TAGS[self]


_FAILURE_TAGS = {
    Stage.LOAD_HISTORY: "history_failed",
    Stage.RETRIEVE:     "retrieval_failed",
    Stage.GENERATE:     "llm_failed",
    Stage.SAVE_HISTORY: "save_failed",
    Stage.DONE:         "",
}


class StageFailure(Exception):
    """A pipeline stage failed; ``tag`` names which one."""

    def __init__(self, stage: Stage, cause: BaseException):
        super().__init__(f"{stage.failure_tag}: {cause}")
        self.stage = stage
        self.cause = cause

    @property
    def tag(self) -> str:
        return self.stage.failure_tag


class Generator(Protocol):
    async def generate(self, query: str, passages: Sequence[ScoredPassage]) -> str:
        ...


@dataclass
class ChatResult:
    response: str
    passages: List[ScoredPassage] = field(default_factory=list)
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "response": self.response,
            "passages": [p.model_dump() for p in self.passages],
        }


def timeout_result() -> ChatResult:
    return ChatResult(response=TIMEOUT_RESPONSE, passages=[], timed_out=True)


class ChatPipeline:
    """Runs one chat turn against explicitly injected collaborators."""

    def __init__(
        self,
        sessions: SessionCache,
        store: VectorStore,
        generator: Generator,
        deadline_ms: float = DEFAULT_DEADLINE_MS,
        top_k: int = DEFAULT_TOP_K,
    ):
        self.sessions = sessions
        self.store = store
        self.generator = generator
        self.deadline_ms = deadline_ms
        self.top_k = top_k

    async def run(self, session_id: str, message: str) -> ChatResult:
        """
        Answer *message* for *session_id*.

        Returns the timeout fallback when the overall deadline elapses.
        Raises ``StageFailure`` when a stage fails before that.
        """
        result = await guard(
            self._run_stages(session_id, message),
            self.deadline_ms,
            timeout_result(),
            label=f"chat pipeline ({session_id})",
        )
        if result.timed_out:
            logger.warning("Chat pipeline for session %s timed out after %.0f ms.", session_id, self.deadline_ms)
        return result

    async def _run_stages(self, session_id: str, message: str) -> ChatResult:
        history: SessionHistory = await self._stage(
            Stage.LOAD_HISTORY, session_id, self.sessions.load(session_id)
        )
        history.append(SessionMessage(type="user", content=message))

        passages = await self._stage(Stage.RETRIEVE, session_id, self.store.query(message, self.top_k))
        answer = await self._stage(Stage.GENERATE, session_id, self.generator.generate(message, passages))

        history.append(SessionMessage(type="bot", content=answer, passages=passages))
        await self._stage(Stage.SAVE_HISTORY, session_id, self.sessions.save(session_id, history))

        logger.debug("Chat turn for session %s done (%d messages).", session_id, len(history))
        return ChatResult(response=answer, passages=list(passages))

    async def _stage(self, stage: Stage, session_id: str, work: Awaitable[T]) -> T:
        try:
            return await work
        except Exception as exc:
            logger.error(
                "Chat pipeline stage %s failed for session %s: %s",
                stage.failure_tag, session_id, exc, exc_info=True,
            )
            raise StageFailure(stage, exc) from exc
