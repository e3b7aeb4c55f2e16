"""
api/chat.py
===========
POST /api/chat
--------------
Accepts ``{"sessionId": str, "message": str}`` and runs one turn of the
chat pipeline (load history → retrieve → generate → save history).

  200 {response, passages}           answer, or the timeout fallback
  400 {error}                        missing / empty sessionId or message
  500 {error[, details]}             a pipeline stage failed; details are
                                     only echoed outside production
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from backend.api.deps import get_pipeline, get_settings
from backend.config import Settings
from backend.schemas.response import ChatRequest, ChatResponse, ErrorResponse
from rag_pipeline.orchestrator import ChatPipeline, StageFailure

logger = logging.getLogger(__name__)

router = APIRouter()

VALIDATION_ERROR = "Session ID and message are required"


def error_response(status_code: int, error: str, detail: str | None, settings: Settings) -> JSONResponse:
    payload = {"error": error}
    if detail and not settings.is_production:
        payload["details"] = detail
    return JSONResponse(status_code=status_code, content=payload)


@router.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    pipeline: ChatPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    """Answer one chat message for a session."""
    if not body.is_valid():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": VALIDATION_ERROR},
        )

    try:
        result = await pipeline.run(body.sessionId, body.message)
    except StageFailure as exc:
        logger.error("Error processing chat message [%s] for session %s", exc.tag, body.sessionId)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to process message",
            str(exc.cause) or type(exc.cause).__name__,
            settings,
        )

    return ChatResponse(response=result.response, passages=result.passages)
