"""
In-memory fixed-window rate limiting by client IP.

Each preset is used as a FastAPI dependency:

    @router.post("/ai/bio-generator", dependencies=[Depends(rate_limit("ai"))])

State lives in the worker process, so limits apply per worker.
"""
import math
import time
from dataclasses import dataclass
from typing import Dict, Tuple

import structlog
from fastapi import HTTPException, Request

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateLimitPolicy:
    requests: int
    window_seconds: int


RATE_LIMITS: Dict[str, RateLimitPolicy] = {
    "strict": RateLimitPolicy(5, 60 * 60),  # OTP and password flows
    "ai": RateLimitPolicy(30, 60),
    "search": RateLimitPolicy(60, 60),
    "payment": RateLimitPolicy(10, 60),
    "standard": RateLimitPolicy(120, 60),
}

CLEANUP_INTERVAL_SECONDS = 5 * 60


class RateLimiter:
    def __init__(self):
        # key -> (count, reset_at)
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._last_cleanup = time.monotonic()

    def _cleanup(self, now: float):
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._last_cleanup = now
        for key in [k for k, (_, reset_at) in self._windows.items() if now > reset_at]:
            del self._windows[key]

    def hit(self, key: str, policy: RateLimitPolicy) -> int:
        """Record a request. Returns 0 when allowed, else seconds until the window resets."""
        now = time.monotonic()
        self._cleanup(now)

        count, reset_at = self._windows.get(key, (0, 0.0))
        if count == 0 or now > reset_at:
            self._windows[key] = (1, now + policy.window_seconds)
            return 0
        if count >= policy.requests:
            return max(1, math.ceil(reset_at - now))
        self._windows[key] = (count + 1, reset_at)
        return 0

    def reset(self):
        self._windows.clear()


limiter = RateLimiter()


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("x-real-ip", "cf-connecting-ip"):
        if request.headers.get(header):
            return request.headers[header]
    return request.client.host if request.client else "unknown"


def rate_limit(preset: str = "standard", key_prefix: str = None):
    policy = RATE_LIMITS[preset]
    prefix = key_prefix or preset

    async def dependency(request: Request):
        client_ip = get_client_ip(request)
        retry_after = limiter.hit(f"{prefix}:{client_ip}", policy)
        if retry_after:
            logger.warning(
                "Rate limit exceeded",
                client_ip=client_ip,
                path=request.url.path,
                preset=preset,
                retry_after=retry_after,
            )
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(policy.requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return dependency
