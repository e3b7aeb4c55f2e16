"""
api/health.py
=============
GET /api/health — liveness probe plus durable session-store connectivity.
"""

from fastapi import APIRouter, Depends

from backend.api.deps import get_session_cache
from backend.schemas.response import HealthResponse
from rag_pipeline.session_cache import SessionCache

router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health_check(sessions: SessionCache = Depends(get_session_cache)):
    """Report service status; ``redis`` reflects the durable tier only."""
    return HealthResponse(
        redis        = await sessions.status(),
        requireRedis = sessions.strict,
    )
