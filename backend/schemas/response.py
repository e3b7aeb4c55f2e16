"""
schemas/response.py
===================
Pydantic v2 request/response models for the HTTP API.

Field names follow the JSON contract used by the web client (camelCase
``sessionId``, ``requireRedis``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from rag_pipeline.models import ScoredPassage, SessionMessage


def _utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    sessionId: Optional[str] = None
    message: Optional[str] = None

    def is_valid(self) -> bool:
        return bool(self.sessionId and self.sessionId.strip()) and bool(
            self.message and self.message.strip()
        )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str = Field(default_factory=_utc_now)
    redis: Literal["connected", "unavailable"]
    requireRedis: bool


class SessionCreated(BaseModel):
    sessionId: str


class HistoryResponse(BaseModel):
    history: List[SessionMessage] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str


class ChatResponse(BaseModel):
    response: str
    passages: List[ScoredPassage] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Error response
# ---------------------------------------------------------------------------

class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
