"""Throttling and replay protection for write endpoints.

Each acting user (an admin, or a merchant owner on self-service routes) gets
a fixed-window budget per action, so a burst of plan edits does not eat the
budget for assignments. Assignment requests may carry an ``Idempotency-Key``
header; a replayed key is refused until it expires.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import redis.asyncio as redis

from src.core.config import settings
from src.core.exceptions import DuplicateRequest, RateLimitExceeded


logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return the shared Redis client, connecting on first use."""

    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            str(settings.REDIS_URI), decode_responses=True
        )
    return _redis_client


async def close_redis() -> None:
    """Drop the shared client; called on application shutdown."""

    global _redis_client
    if _redis_client is not None and hasattr(_redis_client, "aclose"):
        await _redis_client.aclose()
    _redis_client = None


def rate_limit_key(actor_id: str, action: str, window: int) -> str:
    return f"{settings.limits.key_prefix}:ratelimit:{action}:{actor_id}:{window}"


def idempotency_key(actor_id: str, scope: str, key: str) -> str:
    return f"{settings.limits.key_prefix}:idempotency:{scope}:{actor_id}:{key}"


async def check_rate_limit(actor_id: str, action: str = "admin") -> None:
    """Count one ``action`` by ``actor_id`` and refuse it once over budget."""

    window_seconds = settings.limits.rate_limit_window_seconds
    now = time.time()
    window = int(now // window_seconds)
    key = rate_limit_key(actor_id, action, window)

    client = await get_redis()
    current = await client.incr(key)
    if current == 1:
        await client.expire(key, window_seconds)
    if current > settings.RATE_LIMIT_RPM:
        retry_after = max(1, int((window + 1) * window_seconds - now))
        logger.info(f"Throttled {actor_id} on {action}: {current} requests in window")
        raise RateLimitExceeded(retry_after)


async def ensure_idempotent(
    actor_id: str, key: Optional[str], scope: str = "assignments"
) -> None:
    """Claim ``key`` for ``actor_id``; a second claim inside the TTL is a replay."""

    if not key:
        return
    client = await get_redis()
    was_set = await client.set(
        idempotency_key(actor_id, scope, key),
        "1",
        ex=settings.limits.idempotency_ttl_seconds,
        nx=True,
    )
    if not was_set:
        logger.info(f"Replayed idempotency key {key} from {actor_id} on {scope}")
        raise DuplicateRequest()
