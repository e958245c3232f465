from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline

SCAN_BATCH_SIZE = 500


class WriteBatch(Protocol):
    """Queued writes sent to the store in one round trip, without a transaction."""

    def set_hash(self, key: str, mapping: Mapping[str, str], *, ttl_seconds: int | None = None) -> None: ...

    def expire(self, key: str, seconds: int) -> None: ...

    def add_member(self, key: str, member: str) -> None: ...

    def remove_member(self, key: str, member: str) -> None: ...

    def increment(self, key: str, field: str, amount: int = 1) -> None: ...


class KeyedStore(Protocol):
    async def ping(self) -> bool: ...

    async def get_hash(self, key: str) -> dict[str, str]: ...

    async def get_hash_field(self, key: str, field: str) -> str | None: ...

    async def get_hashes(self, keys: Sequence[str]) -> list[dict[str, str]]: ...

    async def exists_many(self, keys: Sequence[str]) -> list[bool]: ...

    async def members(self, key: str) -> set[str]: ...

    async def members_many(self, keys: Sequence[str]) -> list[set[str]]: ...

    async def cardinality(self, key: str) -> int: ...

    async def remove_members(self, key: str, *members: str) -> int: ...

    async def delete(self, *keys: str) -> int: ...

    async def scan_keys(self, pattern: str) -> list[str]: ...

    def batch(self) -> AbstractAsyncContextManager[WriteBatch]: ...

    async def close(self) -> None: ...


class RedisWriteBatch:
    def __init__(self, pipeline: Pipeline) -> None:
        self._pipeline = pipeline

    def set_hash(self, key: str, mapping: Mapping[str, str], *, ttl_seconds: int | None = None) -> None:
        self._pipeline.hset(key, mapping=dict(mapping))
        if ttl_seconds is not None:
            self._pipeline.expire(key, ttl_seconds)

    def expire(self, key: str, seconds: int) -> None:
        self._pipeline.expire(key, seconds)

    def add_member(self, key: str, member: str) -> None:
        self._pipeline.sadd(key, member)

    def remove_member(self, key: str, member: str) -> None:
        self._pipeline.srem(key, member)

    def increment(self, key: str, field: str, amount: int = 1) -> None:
        self._pipeline.hincrby(key, field, amount)


class RedisKeyedStore:
    """KeyedStore over ``redis.asyncio``; the client must use ``decode_responses=True``."""

    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisKeyedStore:
        return cls(Redis.from_url(url, decode_responses=True, **kwargs))

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def get_hash(self, key: str) -> dict[str, str]:
        return dict(await self.client.hgetall(key))

    async def get_hash_field(self, key: str, field: str) -> str | None:
        return await self.client.hget(key, field)

    async def get_hashes(self, keys: Sequence[str]) -> list[dict[str, str]]:
        if not keys:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.hgetall(key)
            rows = await pipe.execute()
        return [dict(row or {}) for row in rows]

    async def exists_many(self, keys: Sequence[str]) -> list[bool]:
        if not keys:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.exists(key)
            rows = await pipe.execute()
        return [bool(row) for row in rows]

    async def members(self, key: str) -> set[str]:
        return set(await self.client.smembers(key))

    async def members_many(self, keys: Sequence[str]) -> list[set[str]]:
        if not keys:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.smembers(key)
            rows = await pipe.execute()
        return [set(row or ()) for row in rows]

    async def cardinality(self, key: str) -> int:
        return int(await self.client.scard(key))

    async def remove_members(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(await self.client.srem(key, *members))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def scan_keys(self, pattern: str) -> list[str]:
        # SCAN may return a key more than once.
        keys = [key async for key in self.client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE)]
        return list(dict.fromkeys(keys))

    @asynccontextmanager
    async def batch(self) -> AsyncIterator[RedisWriteBatch]:
        async with self.client.pipeline(transaction=False) as pipe:
            yield RedisWriteBatch(pipe)
            await pipe.execute()

    async def close(self) -> None:
        await self.client.aclose()
