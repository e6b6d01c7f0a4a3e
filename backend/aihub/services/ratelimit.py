# backend/aihub/services/ratelimit.py
"""Fixed-window counters in Redis (INCR + EXPIRE). Without Redis every call is allowed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from aihub.core.config import settings

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int = 0
    retry_after_sec: int = 0


class RateLimiter:
    def __init__(self, client: Optional[aioredis.Redis] = None) -> None:
        self._client = client

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        if not settings.redis_url:
            return cls(None)
        return cls(aioredis.Redis.from_url(settings.redis_url, decode_responses=True))

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def hit(self, key: str, limit: int, window_sec: int) -> RateDecision:
        if self._client is None or limit <= 0:
            return RateDecision(allowed=True)
        try:
            cur = int(await self._client.incr(key))
            if cur == 1:
                await self._client.expire(key, window_sec)
            if cur > limit:
                ttl = await self._client.ttl(key)
                return RateDecision(allowed=False, count=cur, retry_after_sec=int(ttl) if ttl and ttl > 0 else window_sec)
            return RateDecision(allowed=True, count=cur)
        except RedisError as exc:
            # fail open
            log.warning("ratelimit.redis_error", key=key, error=str(exc))
            return RateDecision(allowed=True)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
