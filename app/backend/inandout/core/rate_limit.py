"""In-memory fixed-window rate limiting for API endpoints."""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, Request, Response, status

from inandout.core.config import get_settings

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown-client"
CLEANUP_PROBABILITY = 0.01


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window_seconds: int


RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    "auth": RateLimitConfig(limit=5, window_seconds=15 * 60),
    "api": RateLimitConfig(limit=100, window_seconds=15 * 60),
    "reports": RateLimitConfig(limit=10, window_seconds=60),
    "upload": RateLimitConfig(limit=20, window_seconds=60),
    "default": RateLimitConfig(limit=60, window_seconds=60),
}


@dataclass(slots=True)
class _WindowEntry:
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time: float

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_time))),
        }


class FixedWindowRateLimiter:
    """Process-local counter keyed by client and path.

    Each key gets a window that opens on its first request and lasts
    ``window_seconds``; requests past ``limit`` inside the window are denied.
    Expired windows are swept opportunistically on a small share of checks.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        random_source: Callable[[], float] = random.random,
        cleanup_probability: float = CLEANUP_PROBABILITY,
    ) -> None:
        self._clock = clock
        self._random = random_source
        self._cleanup_probability = cleanup_probability
        self._entries: dict[str, _WindowEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> float:
        return self._clock()

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        if self._random() < self._cleanup_probability:
            self.cleanup(now)

        entry = self._entries.get(key)
        if entry is None or now > entry.reset_time:
            entry = _WindowEntry(count=1, reset_time=now + config.window_seconds)
            self._entries[key] = entry
            return RateLimitResult(
                allowed=True,
                limit=config.limit,
                remaining=config.limit - 1,
                reset_time=entry.reset_time,
            )

        if entry.count >= config.limit:
            return RateLimitResult(allowed=False, limit=config.limit, remaining=0, reset_time=entry.reset_time)

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            limit=config.limit,
            remaining=config.limit - entry.count,
            reset_time=entry.reset_time,
        )

    def status(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Report the current window for ``key`` without consuming a request."""

        now = self._clock()
        entry = self._entries.get(key)
        if entry is None or now > entry.reset_time:
            return RateLimitResult(
                allowed=True,
                limit=config.limit,
                remaining=config.limit,
                reset_time=now + config.window_seconds,
            )
        return RateLimitResult(
            allowed=entry.count < config.limit,
            limit=config.limit,
            remaining=max(0, config.limit - entry.count),
            reset_time=entry.reset_time,
        )

    def cleanup(self, now: float | None = None) -> int:
        current = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if current > entry.reset_time]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def reset(self) -> None:
        self._entries.clear()


def get_client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    remote_addr = request.headers.get("remote-addr")
    if remote_addr:
        return remote_addr.strip()

    if request.client is not None and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = FixedWindowRateLimiter()
        request.app.state.rate_limiter = limiter
    return limiter


def rate_limited(config_name: str = "default"):
    """Dependency factory applying the named rate limit to an endpoint."""

    config = RATE_LIMIT_CONFIGS.get(config_name, RATE_LIMIT_CONFIGS["default"])

    def dependency(request: Request, response: Response) -> RateLimitResult | None:
        if not get_settings().rate_limit_enabled:
            return None

        client_id = get_client_id(request)
        limiter = get_rate_limiter(request)
        result = limiter.check(f"{client_id}:{request.url.path}", config)
        headers = result.headers()

        if not result.allowed:
            retry_after = max(1, int(math.ceil(result.reset_time - limiter.now())))
            logger.warning(
                "Rate limit '%s' exceeded for client %s on %s",
                config_name,
                client_id,
                request.url.path,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many requests. Try again in {retry_after} seconds.",
                headers={**headers, "Retry-After": str(retry_after)},
            )

        for name, value in headers.items():
            response.headers[name] = value
        return result

    return dependency
