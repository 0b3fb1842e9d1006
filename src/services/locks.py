"""Locking primitives for plan changes and scheduled jobs."""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from src.core.config import settings
from src.services.limits import get_redis


logger = logging.getLogger(__name__)

# Per-merchant locks plus a count of tasks holding or waiting on each.
# An entry is dropped once its count reaches zero.
_merchant_locks: Dict[str, asyncio.Lock] = {}
_lock_users: Dict[str, int] = {}


@asynccontextmanager
async def merchant_guard(merchant_id: str) -> AsyncIterator[None]:
    """Serialize plan changes for one merchant inside this process.

    Cross-process exclusion comes from the ``FOR UPDATE`` lock on the merchant
    row taken inside the same critical section.
    """

    lock = _merchant_locks.get(merchant_id)
    if lock is None:
        lock = _merchant_locks[merchant_id] = asyncio.Lock()
    _lock_users[merchant_id] = _lock_users.get(merchant_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _lock_users[merchant_id] -= 1
        if not _lock_users[merchant_id]:
            del _lock_users[merchant_id]
            del _merchant_locks[merchant_id]


class JobLock:
    """Cluster-wide "one run at a time" guard for a named job."""

    def __init__(self, backend: str | None = None, ttl_seconds: int | None = None) -> None:
        self.backend = backend or settings.scheduler.lock_backend
        self.ttl_seconds = ttl_seconds or settings.scheduler.lock_ttl_seconds
        self._local: Dict[str, str] = {}

    async def acquire(self, name: str) -> str | None:
        """Return a token when the lock was taken, ``None`` if another run holds it."""

        token = uuid.uuid4().hex
        if self.backend == "memory":
            if name in self._local:
                return None
            self._local[name] = token
            return token

        client = await get_redis()
        was_set = await client.set(f"job-lock:{name}", token, ex=self.ttl_seconds, nx=True)
        return token if was_set else None

    async def release(self, name: str, token: str) -> None:
        if self.backend == "memory":
            if self._local.get(name) == token:
                del self._local[name]
            return

        client = await get_redis()
        key = f"job-lock:{name}"
        if await client.get(key) == token:
            await client.delete(key)

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[bool]:
        token = await self.acquire(name)
        if token is None:
            logger.info(f"Job {name} is already running elsewhere, skipping")
            yield False
            return
        try:
            yield True
        finally:
            await self.release(name, token)
