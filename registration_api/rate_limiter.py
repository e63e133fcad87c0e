"""Simple in-memory, per-client rate limiting."""

from __future__ import annotations

import asyncio
import os
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

from fastapi import Request

from registration_api.errors import RateLimitExceeded


@dataclass
class _Bucket:
    hits: Deque[float]


class RateLimiter:
    """An asyncio-friendly sliding window rate limiter."""

    def __init__(self, *, limit: int, window_seconds: float) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window = window_seconds
        self._lock = asyncio.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._last_sweep = time.monotonic()

    async def try_acquire(self, key: str) -> bool:
        now = time.monotonic()
        cutoff = now - self.window

        async with self._lock:
            if self._last_sweep <= cutoff:
                self._evict_idle(cutoff)
                self._last_sweep = now

            bucket = self._buckets.get(key)
            hits = bucket.hits if bucket is not None else deque()
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.limit:
                return False

            hits.append(now)
            if bucket is None:
                self._buckets[key] = _Bucket(hits)
            return True

    def _evict_idle(self, cutoff: float) -> None:
        """Drop clients whose newest hit has left the window; runs at most once per window."""

        idle = [key for key, bucket in self._buckets.items() if not bucket.hits or bucket.hits[-1] <= cutoff]
        for key in idle:
            del self._buckets[key]

    async def check(self, key: str) -> None:
        """Like :meth:`try_acquire` but raises :class:`RateLimitExceeded` when over the limit."""

        if not await self.try_acquire(key):
            raise RateLimitExceeded(retry_after_seconds=int(self.window))


_request_limiter: Optional[RateLimiter] = None
_limiter_loaded = False


def get_request_rate_limiter() -> Optional[RateLimiter]:
    """Return the shared per-client limiter, or None when limiting is disabled."""

    global _request_limiter, _limiter_loaded
    if _limiter_loaded:
        return _request_limiter

    try:
        limit = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
        window = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))
    except ValueError:
        limit = 100
        window = 900.0

    _request_limiter = RateLimiter(limit=limit, window_seconds=window) if limit > 0 and window > 0 else None
    _limiter_loaded = True
    return _request_limiter


def reset_request_rate_limiter() -> None:
    """Forget the cached limiter so the next call re-reads the environment."""

    global _request_limiter, _limiter_loaded
    _request_limiter = None
    _limiter_loaded = False


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency applied to the public write endpoints."""

    limiter = get_request_rate_limiter()
    if limiter is None:
        return
    client = request.client.host if request.client else "unknown"
    await limiter.check(f"client:{client}")


__all__ = [
    "RateLimiter",
    "RateLimitExceeded",
    "enforce_rate_limit",
    "get_request_rate_limiter",
    "reset_request_rate_limiter",
]
