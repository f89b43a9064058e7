"""
Per-key locks used to serialise "check then insert" sequences.

Posting a ride checks that the driver has no active ride and then inserts
one; the pair must be atomic per driver.  ``LocalLockProvider`` covers a
single process, ``RedisLockProvider`` covers several API processes sharing
one database.

The Redis implementation uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis

from campus_rides.domain.errors import ConflictError


class LockNotAcquired(ConflictError):
    """Another request is holding the lock for this key."""


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        wait_seconds: float = 0.0,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait_seconds = wait_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire_within(
        self, wait_seconds: float, poll_seconds: float = 0.05
    ) -> bool:
        """Poll ``acquire`` until it succeeds or *wait_seconds* elapse."""
        deadline = time.monotonic() + wait_seconds
        while True:
            if await self.acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_seconds)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        lua = """
        if redis.call("get", KEYS[1]) == ARGV[1] then
            return redis.call("del", KEYS[1])
        else
            return 0
        end
        """
        await self.redis.eval(lua, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        if not await self.acquire_within(self.wait_seconds):
            raise LockNotAcquired(
                "Another request for this key is in progress, try again"
            )
        return self

    async def __aexit__(self, *args):
        await self.release()


class LockProvider(ABC):
    @abstractmethod
    def hold(self, key: str) -> AsyncIterator[None]:
        """Async context manager holding the lock for *key*."""


class LocalLockProvider(LockProvider):
    """Per-key ``asyncio.Lock``; an entry lives only while someone holds or
    waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class RedisLockProvider(LockProvider):
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 30,
        wait_seconds: float = 5.0,
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.wait_seconds = wait_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with DistributedLock(
            self.redis, key, ttl_seconds=self.ttl, wait_seconds=self.wait_seconds
        ):
            yield
