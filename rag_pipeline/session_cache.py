"""
session_cache.py
================
Dual-tier store for per-session chat histories.

Durable tier: Redis (``session:<id>`` → JSON array, expiring after the TTL).
Fallback tier: a process-local dict whose entries are dropped by a loop
timer after the same TTL (lost on restart).

Every Redis call is bounded by a short deadline.  A timeout, a Redis
error, a missing Redis configuration or an unreadable payload counts as a
durable-tier failure, which the configured ``CacheMode`` resolves:

  STRICT  → ``SessionStoreUnavailable`` propagates to the caller
  LENIENT → the call is served by the in-process tier
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from rag_pipeline.models import SessionHistory, dump_history, parse_history
from rag_pipeline.timeout import guard

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_OP_TIMEOUT_MS = 500

_TIMED_OUT = object()


class SessionStoreUnavailable(Exception):
    """Raised in strict mode when the durable session store cannot serve a call."""


class CacheMode(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"

    @classmethod
    def from_flag(cls, require_redis: bool) -> "CacheMode":
        return cls.STRICT if require_redis else cls.LENIENT


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


# ---------------------------------------------------------------------------
# Durable tier
# ---------------------------------------------------------------------------

class RedisSessionBackend:
    """Thin async wrapper over a ``redis.asyncio`` client."""

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_url(
        cls,
        url: str,
        password: Optional[str] = None,
        tls: bool = False,
        timeout_ms: float = DEFAULT_OP_TIMEOUT_MS,
    ) -> "RedisSessionBackend":
        import redis.asyncio as redis  # type: ignore

        if tls and url.startswith("redis://"):
            url = "rediss://" + url[len("redis://"):]
        client = redis.from_url(
            url,
            password=password or None,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=timeout_ms / 1000.0,
            socket_timeout=timeout_ms / 1000.0,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        return bool(await self._client.set(key, value, ex=ttl_seconds))

    async def delete(self, key: str) -> int:
        return int(await self._client.delete(key))

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Fallback tier
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    history: SessionHistory
    expires_at: float


class InMemorySessionBackend:
    """Process-local histories with timer-driven expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def load(self, session_id: str) -> SessionHistory:
        entry = self._entries.get(session_id)
        if entry is None:
            return []
        if entry.expires_at <= self._clock():
            self.clear(session_id)
            return []
        return list(entry.history)

    def save(self, session_id: str, history: SessionHistory, ttl_seconds: int) -> None:
        self._entries[session_id] = CacheEntry(list(history), self._clock() + ttl_seconds)

        previous = self._timers.pop(session_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._timers[session_id] = loop.call_later(ttl_seconds, self._expire, session_id)

    def clear(self, session_id: str) -> None:
        self._entries.pop(session_id, None)
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def _expire(self, session_id: str) -> None:
        self._timers.pop(session_id, None)
        self._entries.pop(session_id, None)
        logger.debug("In-memory session %s expired.", session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()


# ---------------------------------------------------------------------------
# Cache facade
# ---------------------------------------------------------------------------

class SessionCache:
    """
    One cache interface over the two tiers.

    Parameters
    ----------
    durable     : Redis backend, or None when no Redis is configured
                  (every call then counts as a durable failure)
    mode        : CacheMode.STRICT or CacheMode.LENIENT
    ttl_seconds : expiry applied on every save (TTL reset)
    op_timeout_ms : deadline for each individual Redis call
    """

    def __init__(
        self,
        durable: Optional[RedisSessionBackend],
        mode: CacheMode = CacheMode.LENIENT,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        op_timeout_ms: float = DEFAULT_OP_TIMEOUT_MS,
        fallback: Optional[InMemorySessionBackend] = None,
    ):
        self.durable = durable
        self.mode = mode
        self.ttl_seconds = ttl_seconds
        self.op_timeout_ms = op_timeout_ms
        self.fallback = fallback or InMemorySessionBackend()

    @property
    def strict(self) -> bool:
        return self.mode is CacheMode.STRICT

    async def _durable_call(self, op: str, call: Callable[[RedisSessionBackend], Any]) -> Any:
        """Run one Redis call under the op deadline; raise SessionStoreUnavailable on any failure."""
        if self.durable is None:
            raise SessionStoreUnavailable("Redis is not configured")
        try:
            result = await guard(call(self.durable), self.op_timeout_ms, _TIMED_OUT, label=f"redis {op}")
        except Exception as exc:
            raise SessionStoreUnavailable(f"Redis {op} failed: {exc}") from exc
        if result is _TIMED_OUT:
            raise SessionStoreUnavailable(f"Redis {op} timed out after {self.op_timeout_ms:.0f} ms")
        return result

    def _degrade(self, op: str, session_id: str, exc: SessionStoreUnavailable) -> None:
        if self.strict:
            logger.error("Redis is required but unavailable (%s %s): %s", op, session_id, exc)
            raise SessionStoreUnavailable("Redis is required but unavailable") from exc
        logger.warning("Redis %s failed, using in-memory session store: %s", op, exc)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, session_id: str) -> SessionHistory:
        """Return the stored history, or ``[]`` when the session is unknown."""
        try:
            raw = await self._durable_call("GET", lambda r: r.get(session_key(session_id)))
            if not raw:
                return []
            try:
                return parse_history(raw)
            except ValidationError as exc:
                raise SessionStoreUnavailable(f"Malformed history payload for {session_id}") from exc
        except SessionStoreUnavailable as exc:
            self._degrade("GET", session_id, exc)
        return self.fallback.load(session_id)

    async def save(self, session_id: str, history: SessionHistory) -> None:
        """Write *history* with a fresh TTL."""
        payload = dump_history(history)
        try:
            ok = await self._durable_call(
                "SET", lambda r: r.set(session_key(session_id), payload, self.ttl_seconds)
            )
            if ok:
                return
            raise SessionStoreUnavailable("Redis SET was not acknowledged")
        except SessionStoreUnavailable as exc:
            self._degrade("SET", session_id, exc)
        self.fallback.save(session_id, history, self.ttl_seconds)

    async def clear(self, session_id: str) -> None:
        try:
            await self._durable_call("DEL", lambda r: r.delete(session_key(session_id)))
            self.fallback.clear(session_id)
            return
        except SessionStoreUnavailable as exc:
            self._degrade("DEL", session_id, exc)
        self.fallback.clear(session_id)

    async def status(self) -> str:
        """Connectivity of the durable tier only: ``connected`` or ``unavailable``."""
        try:
            await self._durable_call("PING", lambda r: r.ping())
            return "connected"
        except SessionStoreUnavailable as exc:
            logger.debug("Redis health check failed: %s", exc)
            return "unavailable"

    async def close(self) -> None:
        self.fallback.close()
        if self.durable is not None:
            try:
                await self.durable.close()
            except Exception as exc:
                logger.warning("Error closing Redis connection: %s", exc)


def build_session_cache(
    redis_url: str = "",
    redis_password: str = "",
    redis_tls: bool = False,
    require_redis: bool = False,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    op_timeout_ms: float = DEFAULT_OP_TIMEOUT_MS,
) -> SessionCache:
    """Build the cache from configuration; Redis connects lazily on first call."""
    durable: Optional[RedisSessionBackend] = None
    if redis_url:
        durable = RedisSessionBackend.from_url(
            redis_url, password=redis_password, tls=redis_tls, timeout_ms=op_timeout_ms
        )
    mode = CacheMode.from_flag(require_redis)
    logger.info(
        "Session cache: durable=%s mode=%s ttl=%ss",
        "redis" if durable else "none", mode.value, ttl_seconds,
    )
    return SessionCache(durable, mode=mode, ttl_seconds=ttl_seconds, op_timeout_ms=op_timeout_ms)
