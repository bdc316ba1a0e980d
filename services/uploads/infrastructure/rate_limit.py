"""Fixed-window request counters shared across instances through redis."""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from services.uploads.application.dto import RateLimitDecision
from services.uploads.application.interfaces import RateLimiter

LOGGER = logging.getLogger(__name__)


class RedisRateLimiter(RateLimiter):
    def __init__(
        self,
        *,
        client: aioredis.Redis,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "ratelimit:uploads",
    ) -> None:
        self._redis = client
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix

    @classmethod
    def from_settings(
        cls, *, host: str, port: int, db: int, max_requests: int, window_seconds: int
    ) -> "RedisRateLimiter":
        return cls(
            client=aioredis.Redis(host=host, port=port, db=db),
            max_requests=max_requests,
            window_seconds=window_seconds,
        )

    async def hit(self, client_id: str) -> RateLimitDecision:
        key = f"{self._key_prefix}:{client_id}"
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, self._window_seconds)
            ttl = await self._redis.ttl(key)
            if ttl is None or ttl < 0:
                await self._redis.expire(key, self._window_seconds)
                ttl = self._window_seconds
        except RedisError as exc:
            # counters unavailable: let the request through rather than fail it
            LOGGER.error("Rate limit check failed for %s: %s", client_id, exc)
            return RateLimitDecision(
                limited=False, remaining=self._max_requests, retry_after_seconds=0
            )

        return RateLimitDecision(
            limited=count > self._max_requests,
            remaining=max(self._max_requests - count, 0),
            retry_after_seconds=int(ttl),
        )

    async def aclose(self) -> None:
        await self._redis.aclose()


def client_identifier(headers, fallback: str | None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for name in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(name)
        if value:
            return value
    return fallback or "unknown"
