"""
api/deps.py
===========
FastAPI dependencies resolving the per-app components built by
``create_app`` (stored on ``app.state``).
"""

from fastapi import Request

from backend.config import Settings
from rag_pipeline.orchestrator import ChatPipeline
from rag_pipeline.session_cache import SessionCache


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_cache(request: Request) -> SessionCache:
    return request.app.state.session_cache


def get_pipeline(request: Request) -> ChatPipeline:
    return request.app.state.pipeline
