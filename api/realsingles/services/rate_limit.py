"""Per-process sliding-window rate limiting for write-heavy endpoints.

Hits are counted per route key and client. The client is the first
X-Forwarded-For hop, else a digest of the caller's session or bearer token,
else the socket address. Counts live in memory, so every worker process
enforces its own window.
"""

import hashlib
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from realsingles.auth.deps import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after_seconds: int = 0


SWEEP_INTERVAL_SECONDS = 60


class InMemoryRateLimiter:
    def __init__(self, sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval_seconds
        self._last_sweep = 0.0
        self._longest_window = 0

    def _sweep(self, now: float) -> None:
        # drop keys idle past the longest window
        stale = [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self._longest_window]
        for k in stale:
            del self._hits[k]
        self._last_sweep = now

    def check(self, key: str, limit: int, window_seconds: int, now: float | None = None) -> RateDecision:
        now = time.time() if now is None else now
        with self._lock:
            self._longest_window = max(self._longest_window, window_seconds)
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= window_seconds:
                hits.popleft()
            if len(hits) < limit:
                hits.append(now)
                return RateDecision(allowed=True)
            oldest = hits[0] if hits else now
        return RateDecision(allowed=False, retry_after_seconds=max(1, int(oldest + window_seconds - now)))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = InMemoryRateLimiter()


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()

    token = request.cookies.get(SESSION_COOKIE_NAME) or ""
    authorization = request.headers.get("authorization", "")
    if not token and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if token:
        # JWTs share their header prefix, so key on a digest of the whole token.
        return "token:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]

    return request.client.host if request.client else "unknown"


def rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    """``Depends`` guard that answers 429 with Retry-After once ``limit`` is hit."""

    def _guard(request: Request) -> None:
        decision = limiter.check(f"{route_key}:{client_identifier(request)}", limit, window_seconds)
        if decision.allowed:
            return
        logger.warning(f"[rate_limit] {route_key} exceeded, retry_after={decision.retry_after_seconds}s")
        raise HTTPException(
            status_code=429,
            detail=f"Too many requests. Try again in {decision.retry_after_seconds} seconds",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    return Depends(_guard)
