"""
main.py
=======
FastAPI application entry point for the news RAG chat service.

Run locally:
  uvicorn backend.main:app --reload --port 5000
  # or
  news-rag-chat

``create_app`` builds every component (session cache, embedding gateway,
vector store, generator, chat pipeline) once and hangs them on
``app.state``.  The lifespan handler seeds the corpus before the first
request; a failed seed aborts start-up instead of serving an empty corpus.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.api.chat import VALIDATION_ERROR
from backend.api.chat import router as chat_router
from backend.api.health import router as health_router
from backend.api.sessions import router as sessions_router
from backend.config import Settings
from rag_pipeline.embedder import EmbeddingGateway, build_gateway
from rag_pipeline.knowledge_base import seed_knowledge_base
from rag_pipeline.llm_engine import AnswerGenerator
from rag_pipeline.orchestrator import ChatPipeline, Generator
from rag_pipeline.session_cache import SessionCache, build_session_cache
from rag_pipeline.vector_store import VectorStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed the corpus before the first request; close Redis on shutdown."""
    logger.info("News RAG backend starting up…")

    if app.state.seed_corpus:
        try:
            await seed_knowledge_base(app.state.vector_store)
        except Exception:
            logger.critical("Failed to ingest the news corpus — refusing to start.", exc_info=True)
            raise

    logger.info("All components initialised. Ready.")
    yield

    logger.info("News RAG backend shutting down.")
    await app.state.session_cache.close()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    session_cache: Optional[SessionCache] = None,
    gateway: Optional[EmbeddingGateway] = None,
    vector_store: Optional[VectorStore] = None,
    generator: Optional[Generator] = None,
    seed_corpus: bool = True,
) -> FastAPI:
    """
    Build the application.

    Any component may be passed in pre-built (tests); the rest are created
    from *settings*.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title       = "News RAG Chat API",
        description = (
            "Retrieval-augmented chat over a news corpus with per-session history, "
            "Redis-backed session cache with in-memory fallback, and bounded-latency "
            "request pipeline."
        ),
        version     = "1.0.0",
        docs_url    = "/docs",
        redoc_url   = "/redoc",
        lifespan    = lifespan,
    )

    if session_cache is None:
        session_cache = build_session_cache(
            redis_url      = settings.redis_url,
            redis_password = settings.redis_password,
            redis_tls      = settings.redis_tls,
            require_redis  = settings.require_redis,
            ttl_seconds    = settings.session_ttl_seconds,
            op_timeout_ms  = settings.redis_op_timeout_ms,
        )
    if vector_store is None:
        gateway = gateway or build_gateway(
            provider     = settings.embeddings_provider,
            jina_api_key = settings.jina_api_key,
            jina_model   = settings.jina_model,
            hf_api_key   = settings.hf_api_key,
            hf_model     = settings.hf_model,
            timeout_ms   = settings.embedding_timeout_ms,
        )
        vector_store = VectorStore(gateway, embed_timeout_ms=settings.retrieval_embed_timeout_ms)
    if generator is None:
        generator = AnswerGenerator(
            api_key       = settings.gemini_api_key,
            model         = settings.llm_model,
            base_url      = settings.llm_base_url,
            timeout_ms    = settings.llm_timeout_ms,
            expose_errors = not settings.is_production,
        )

    app.state.settings = settings
    app.state.session_cache = session_cache
    app.state.vector_store = vector_store
    app.state.seed_corpus = seed_corpus
    app.state.pipeline = ChatPipeline(
        sessions    = session_cache,
        store       = vector_store,
        generator   = generator,
        deadline_ms = settings.chat_timeout_ms,
    )

    # ── CORS ──────────────────────────────────────────────────────────────
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    if settings.frontend_url:
        origins.append(settings.frontend_url)
    app.add_middleware(
        CORSMiddleware,
        allow_origins     = origins,
        allow_credentials = True,
        allow_methods     = ["*"],
        allow_headers     = ["*"],
    )

    # ── Request log ───────────────────────────────────────────────────────
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s -> %d %.0fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response

    # ── Malformed bodies are client errors (400), not 422 ─────────────────
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.debug("Rejected request body on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": VALIDATION_ERROR},
        )

    # ── Routers ───────────────────────────────────────────────────────────
    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(chat_router)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the module-level app on the configured port."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)


if __name__ == "__main__":
    run()
