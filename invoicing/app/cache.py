"""Redis-backed response cache.

Cache correctness is not safety critical: reads that fail behave like misses
and invalidation failures are logged and counted, never raised.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from redis.asyncio import Redis

from .routes_metrics import cache_invalidation_failures_total

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


class ResponseCache:
    """Thin JSON cache over a ``redis.asyncio`` client."""

    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(key)
        except Exception as exc:
            logger.warning("cache read failed key=%s: %s", key, exc)
            return None
        return json.loads(raw) if raw else None

    async def set_json(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        try:
            await self.redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.warning("cache write failed key=%s: %s", key, exc)

    async def invalidate(self, pattern: str) -> None:
        """Delete every key starting with ``pattern``; best effort."""

        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{pattern}*")]
            if keys:
                await self.redis.delete(*keys)
        except Exception as exc:
            cache_invalidation_failures_total.inc()
            logger.warning("cache invalidation failed pattern=%s: %s", pattern, exc)


async def invalidate_views(cache: ResponseCache | None, *patterns: str) -> None:
    """Invalidate ``patterns`` on ``cache`` when one is wired in."""

    if cache is None:
        return
    for pattern in patterns:
        await cache.invalidate(pattern)


__all__ = ["DEFAULT_TTL", "ResponseCache", "invalidate_views"]
