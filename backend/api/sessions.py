"""
api/sessions.py
===============
Session lifecycle endpoints.

  POST   /api/sessions              → new server-generated session id
  GET    /api/sessions/{id}/history → stored history (empty when unknown)
  DELETE /api/sessions/{id}         → drop the stored history
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from backend.api.deps import get_session_cache
from backend.schemas.response import ErrorResponse, HistoryResponse, MessageResponse, SessionCreated
from rag_pipeline.session_cache import SessionCache, SessionStoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/sessions", response_model=SessionCreated)
async def create_session():
    return SessionCreated(sessionId=str(uuid.uuid4()))


@router.get(
    "/api/sessions/{session_id}/history",
    response_model=HistoryResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
)
async def get_history(session_id: str, sessions: SessionCache = Depends(get_session_cache)):
    try:
        history = await sessions.load(session_id)
    except SessionStoreUnavailable as exc:
        logger.error("Failed to fetch history for %s: %s", session_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch session history"},
        )
    return HistoryResponse(history=history)


@router.delete(
    "/api/sessions/{session_id}",
    response_model=MessageResponse,
    responses={500: {"model": ErrorResponse}},
)
async def clear_session(session_id: str, sessions: SessionCache = Depends(get_session_cache)):
    try:
        await sessions.clear(session_id)
    except SessionStoreUnavailable as exc:
        logger.error("Failed to clear session %s: %s", session_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to clear session"},
        )
    return MessageResponse(message="Session cleared successfully")
