"""Sliding-window rate limiting for upload endpoints."""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from typing import Deque, DefaultDict


class RateLimiter:
    """Track attempts per key inside a sliding time window."""

    def __init__(self) -> None:
        self._attempts: DefaultDict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def retry_after(self, key: str, max_requests: int, window_seconds: int) -> int:
        """Record an attempt and return 0, or the seconds to wait when over the limit."""
        async with self._lock:
            now = time.monotonic()
            bucket = self._attempts[key]

            while bucket and bucket[0] <= now - window_seconds:
                bucket.popleft()

            if len(bucket) >= max_requests:
                return max(1, int(bucket[0] + window_seconds - now))

            bucket.append(now)
            return 0

    async def reset(self, key: str | None = None) -> None:
        async with self._lock:
            if key is None:
                self._attempts.clear()
            else:
                self._attempts.pop(key, None)


import_rate_limiter = RateLimiter()
