"""
timeout.py
==========
Bound an awaitable by a deadline and substitute a fallback value when the
deadline wins.

The losing operation is cancelled, so work that overruns its budget stops
at its next suspension point instead of running on in the background.
Side effects that landed before cancellation (e.g. a Redis SET already
sent) are not rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def guard(
    operation: Awaitable[T],
    deadline_ms: float,
    fallback: T,
    label: str = "operation",
) -> T:
    """
    Await *operation* for at most *deadline_ms* milliseconds.

    Returns the operation's result, or *fallback* if the deadline elapses
    first.  A timeout never raises; exceptions raised by the operation
    itself before the deadline propagate unchanged.
    """
    task = asyncio.ensure_future(operation)

    if deadline_ms <= 0:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug("%s skipped: deadline already expired.", label)
        return fallback

    try:
        return await asyncio.wait_for(task, timeout=deadline_ms / 1000.0)
    except asyncio.TimeoutError:
        logger.debug("%s exceeded %.0f ms — using fallback.", label, deadline_ms)
        return fallback
