"""Redis cache store."""

from __future__ import annotations

import json
import logging
from typing import Any

from directus_sdk.types import CacheEntry

logger = logging.getLogger(__name__)


def _serialize_entry(entry: CacheEntry) -> str:
    """Serialize a cache entry to JSON."""
    return json.dumps(entry.to_dict())


def _deserialize_entry(data: bytes | str) -> CacheEntry:
    """Deserialize JSON to a cache entry."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return CacheEntry.from_dict(json.loads(data))


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class AsyncRedisCache:
    """Async Redis cache store.

    Entries are JSON strings under ``<prefix>:cache:<key>``; each tag is a Redis
    set of keys under ``<prefix>:tag:<tag>``, so registering a key twice is
    naturally idempotent. Redis writes are atomic per command.
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "directus",
    ) -> None:
        self._client = client
        self._prefix = prefix

    def _cache_key(self, key: str) -> str:
        """Generate full Redis key for cache entries."""
        return f"{self._prefix}:cache:{key}"

    def _tag_key(self, tag: str) -> str:
        """Generate full Redis key for a tag's key set."""
        return f"{self._prefix}:tag:{tag}"

    async def get(self, key: str) -> CacheEntry | None:
        """Get a cache entry by key."""
        data = await self._client.get(self._cache_key(key))
        if data is None:
            return None
        try:
            return _deserialize_entry(data)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Corrupt cache entry %r: %s", key, e)
            return None

    async def put(self, entry: CacheEntry, tags: list[str] | tuple[str, ...]) -> None:
        """Store an entry and add its key to each tag set."""
        await self._client.set(self._cache_key(entry.key), _serialize_entry(entry))
        for tag in tags:
            await self._client.sadd(self._tag_key(tag), entry.key)

    async def remove(self, key: str) -> None:
        """Delete a cache entry."""
        await self._client.delete(self._cache_key(key))

    async def remove_by_tag(self, tag: str) -> None:
        """Delete every entry in the tag set, then the set itself."""
        keys = await self.get_entries_with_tag(tag)
        if keys:
            await self._client.delete(*(self._cache_key(key) for key in keys))
        await self._client.delete(self._tag_key(tag))

    async def get_entries_with_tag(self, tag: str) -> list[str]:
        members = await self._client.smembers(self._tag_key(tag))
        return sorted(_decode(member) for member in members)

    async def clear(self) -> None:
        """Clear all cached entries and tag sets under the prefix."""
        for pattern in (f"{self._prefix}:cache:*", f"{self._prefix}:tag:*"):
            cursor: int = 0
            while True:
                result = await self._client.scan(cursor, match=pattern, count=100)
                cursor = result[0]
                keys = result[1]
                if keys:
                    await self._client.delete(*keys)
                if cursor == 0:
                    break

    async def close(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
