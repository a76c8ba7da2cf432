"""Cache store protocol."""

from typing import Protocol, runtime_checkable

from directus_sdk.types import CacheEntry


@runtime_checkable
class AsyncCacheStore(Protocol):
    """Persists raw response snapshots keyed by string, with tag invalidation.

    ``get`` reports an unreadable or corrupt entry as absent. Write failures may
    raise; the request engine absorbs them so the cache never fails a request.
    """

    async def get(self, key: str) -> CacheEntry | None:
        """Get a cache entry by key."""
        ...

    async def put(self, entry: CacheEntry, tags: list[str] | tuple[str, ...]) -> None:
        """Store an entry atomically and register its key under each tag."""
        ...

    async def remove(self, key: str) -> None:
        """Delete an entry; no-op if absent."""
        ...

    async def remove_by_tag(self, tag: str) -> None:
        """Delete every entry registered under tag, then forget the tag."""
        ...

    async def get_entries_with_tag(self, tag: str) -> list[str]:
        """Keys currently registered under tag."""
        ...

    async def clear(self) -> None:
        """Delete all entries and the tag index."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
