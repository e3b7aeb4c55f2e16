"""
config.py
=========
Runtime configuration, read once from the environment (and the project
``.env`` file) by the application factory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv  # type: ignore

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _clean_env(name: str, default: str = "") -> str:
    value = os.getenv(name, default)
    return value.strip().strip('"').strip("'")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _clean_env(name, "")
    if not raw:
        return default
    return raw.lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = _clean_env(name, "")
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    """Application settings; see ``from_env`` for the variable names."""

    # Durable session tier
    redis_url: str = "redis://localhost:6379"
    redis_password: str = ""
    redis_tls: bool = False
    require_redis: bool = False
    session_ttl_seconds: int = 3600
    redis_op_timeout_ms: int = 500

    # Embeddings
    embeddings_provider: str = ""
    jina_api_key: str = ""
    jina_model: str = "jina-embeddings-v2-base-en"
    hf_api_key: str = ""
    hf_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_timeout_ms: int = 1000
    retrieval_embed_timeout_ms: int = 1500

    # Generation
    gemini_api_key: str = ""
    llm_model: str = "gemini-1.5-flash"
    llm_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    llm_timeout_ms: int = 10000

    # Pipeline / server
    chat_timeout_ms: int = 10000
    port: int = 5000
    environment: str = "development"
    frontend_url: str = ""
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        """Load settings from the environment, after applying ``.env`` if present."""
        load_dotenv(env_file or os.path.join(os.path.dirname(__file__), "..", ".env"))

        return cls(
            redis_url           = _clean_env("REDIS_URL", "redis://localhost:6379"),
            redis_password      = _clean_env("REDIS_PASSWORD"),
            redis_tls           = _env_bool("REDIS_TLS"),
            require_redis       = _env_bool("REQUIRE_REDIS"),
            session_ttl_seconds = _env_int("SESSION_TTL_SECONDS", 3600),
            redis_op_timeout_ms = _env_int("REDIS_OP_TIMEOUT_MS", 500),
            embeddings_provider = _clean_env("EMBEDDINGS_PROVIDER").lower(),
            jina_api_key        = _clean_env("JINA_API_KEY"),
            jina_model          = _clean_env("JINA_EMBEDDING_MODEL", "jina-embeddings-v2-base-en"),
            hf_api_key          = _clean_env("HF_API_KEY"),
            hf_model            = _clean_env("HF_EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"),
            embedding_timeout_ms = _env_int("EMBEDDING_TIMEOUT_MS", 1000),
            retrieval_embed_timeout_ms = _env_int("RETRIEVAL_EMBED_TIMEOUT_MS", 1500),
            gemini_api_key      = _clean_env("GEMINI_API_KEY"),
            llm_model           = _clean_env("LLM_MODEL", "gemini-1.5-flash"),
            llm_base_url        = _clean_env(
                "LLM_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
            ),
            llm_timeout_ms      = _env_int("LLM_TIMEOUT_MS", 10000),
            chat_timeout_ms     = _env_int("CHAT_TIMEOUT_MS", 10000),
            port                = _env_int("PORT", 5000),
            environment         = _clean_env("ENVIRONMENT", "development") or "development",
            frontend_url        = _clean_env("FRONTEND_URL"),
            log_level           = (_clean_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        )
