"""
Rate limiting for the unauthenticated public API.

Two buckets per client IP:
- browse: catalogue and status reads (GET, check-status)
- submit: loan requests and returns, which write photos to disk

In-memory and per process. With several workers each keeps its own window.
"""
import logging
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from lendbox.core.config import settings

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIX = "/public"
_SUBMIT_SUFFIXES = ("/loans", "/loans/return")


class RateLimiter:
    """Sliding window of request timestamps per key."""

    def __init__(self, limit: int, window: int):
        self.limit = limit
        self.window = window
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = time.monotonic()

    def hit(self, key: str) -> Tuple[bool, int]:
        """Record a request for ``key``. Returns (allowed, remaining)."""
        now = time.monotonic()
        with self._lock:
            if now - self._last_sweep > 300:
                self._sweep(now)

            hits = self._hits[key]
            while hits and hits[0] <= now - self.window:
                hits.popleft()
            if len(hits) >= self.limit:
                return False, 0
            hits.append(now)
            return True, self.limit - len(hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def _sweep(self, now: float) -> None:
        cutoff = now - self.window
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]
        self._last_sweep = now
        logger.info(f"Rate limiter sweep: {len(self._hits)} active clients")


browse_limiter = RateLimiter(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
submit_limiter = RateLimiter(settings.RATE_LIMIT_SUBMISSIONS, settings.RATE_LIMIT_WINDOW_SECONDS)


def limiter_for(method: str, path: str) -> RateLimiter:
    if method == "POST" and path.endswith(_SUBMIT_SUFFIXES):
        return submit_limiter
    return browse_limiter


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit on public routes. Admin routes sit behind login instead."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(RATE_LIMITED_PREFIX):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        limiter = limiter_for(request.method, path)
        allowed, remaining = limiter.hit(client_ip)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.method} {path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "message": f"Too many requests. Try again in {limiter.window} seconds.",
                },
                headers={
                    "Retry-After": str(limiter.window),
                    "X-RateLimit-Limit": str(limiter.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limiter.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
