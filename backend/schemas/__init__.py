# backend/schemas/__init__.py
from backend.schemas.response import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    MessageResponse,
    SessionCreated,
)

__all__ = [
    "ChatRequest", "ChatResponse", "ErrorResponse", "HealthResponse",
    "HistoryResponse", "MessageResponse", "SessionCreated",
]
