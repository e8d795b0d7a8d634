"""
Fixed-window request limiter keyed by scope and client.

Used on endpoints that cost money or hit third parties (sign-in redirects,
SMS codes). Process-local: every worker counts on its own.
"""
from __future__ import annotations

import math
import threading
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request


class _RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def check(self, key: str, limit: int, window_seconds: int) -> None:
        now = self._clock()
        with self._lock:
            count, resets_at = self._windows.get(key, (0, now + window_seconds))
            if now >= resets_at:
                count, resets_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, resets_at)
            if count <= limit:
                return
            retry_after = max(1, math.ceil(resets_at - now))
        raise HTTPException(
            429,
            "Too many requests. Try again shortly.",
            headers={"Retry-After": str(retry_after)},
        )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_limiter = _RateLimiter()


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind the proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_ip(request: Request, scope: str, *, limit: int, window_seconds: int) -> None:
    _limiter.check(f"{scope}:{client_ip(request)}", limit, window_seconds)


def reset_limits() -> None:
    _limiter.reset()
