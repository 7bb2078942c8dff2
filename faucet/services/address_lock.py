"""Address-scoped leases around the throttle check and the pending insert."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from ..constants import LOCK_ADDRESS

logger = logging.getLogger(__name__)


class LeaseUnavailable(Exception):
    """Another request holds the lease for this address."""


class AddressLockManager:
    """Serializes requests for the same address.

    Uses a redis-py distributed lock when a Redis client is configured, so
    several API processes share one view of in-flight addresses; otherwise
    falls back to one ``asyncio.Lock`` per address in this process.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        wait_timeout: float = 30.0,
        lease_ttl: float = 60.0,
    ) -> None:
        self.redis = redis_client
        self.wait_timeout = wait_timeout
        self.lease_ttl = lease_ttl
        self._local_locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @classmethod
    def from_url(cls, redis_url: str | None, **kwargs) -> AddressLockManager:
        client = redis.Redis.from_url(redis_url) if redis_url else None
        return cls(client, **kwargs)

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()

    @asynccontextmanager
    async def hold(self, address: str) -> AsyncIterator[None]:
        """Hold the lease for ``address``; raises LeaseUnavailable on timeout."""
        if self.redis is None:
            async with self._hold_local(address):
                yield
        else:
            async with self._hold_redis(self.redis, address):
                yield

    @asynccontextmanager
    async def _hold_local(self, address: str) -> AsyncIterator[None]:
        lock = self._local_locks.setdefault(address, asyncio.Lock())
        self._waiters[address] = self._waiters.get(address, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_timeout)
            except TimeoutError as e:
                raise LeaseUnavailable(address) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[address] -= 1
            if self._waiters[address] == 0:
                del self._waiters[address]
                self._local_locks.pop(address, None)

    @asynccontextmanager
    async def _hold_redis(self, client: redis.Redis, address: str) -> AsyncIterator[None]:
        lock = client.lock(
            LOCK_ADDRESS.format(address=address),
            timeout=self.lease_ttl,
            blocking_timeout=self.wait_timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error(f"Redis lease for {address} unavailable: {e}")
            raise LeaseUnavailable(address) from e

        if not acquired:
            raise LeaseUnavailable(address)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning(f"Lease for {address} expired before release")
