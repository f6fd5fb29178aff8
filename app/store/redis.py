"""
Redis-backed policy store.

Values are plain strings; TTLs map to SET ... EX. Every backend failure is
re-raised as StoreError so callers can decide between failing closed
(gating reads) and swallowing (best-effort writes).
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.store.base import StoreError


class RedisPolicyStore:
    def __init__(self, url: str, max_connections: int = 20) -> None:
        self._client = redis.Redis.from_url(
            url,
            decode_responses=True,
            max_connections=max_connections,
        )

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise StoreError(f"get {key}: {e}") from e

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl or None)
        except RedisError as e:
            raise StoreError(f"put {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StoreError(f"delete {key}: {e}") from e

    async def list(self, prefix: str) -> list[str]:
        try:
            return sorted([k async for k in self._client.scan_iter(match=f"{prefix}*")])
        except RedisError as e:
            raise StoreError(f"list {prefix}: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()
