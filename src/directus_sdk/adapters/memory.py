"""In-memory cache store."""

import asyncio
from collections import OrderedDict

from directus_sdk.tags import TagIndex
from directus_sdk.types import CacheEntry


class AsyncMemoryCache:
    """Process-local cache store with optional LRU eviction."""

    def __init__(self, max_items: int | None = None) -> None:
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._tags = TagIndex()
        if max_items is not None and max_items < 1:
            raise ValueError("max_items must be at least 1")
        self._max_items = max_items
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        """Get a cache entry by key."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)  # LRU touch
            return entry

    async def put(self, entry: CacheEntry, tags: list[str] | tuple[str, ...]) -> None:
        """Store an entry and index it under its tags."""
        async with self._lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            for tag in tags:
                self._tags.add_entry(tag, entry.key)
            if self._max_items is not None and len(self._entries) > self._max_items:
                evicted, _ = self._entries.popitem(last=False)
                self._tags.discard_key(evicted)

    async def remove(self, key: str) -> None:
        """Delete a cache entry."""
        async with self._lock:
            self._entries.pop(key, None)
            self._tags.discard_key(key)

    async def remove_by_tag(self, tag: str) -> None:
        """Delete every entry stored under tag."""
        async with self._lock:
            for key in self._tags.get_entries_with_tag(tag):
                self._entries.pop(key, None)
                self._tags.discard_key(key)
            self._tags.remove_all_entries_with_tag(tag)

    async def get_entries_with_tag(self, tag: str) -> list[str]:
        async with self._lock:
            return self._tags.get_entries_with_tag(tag)

    async def clear(self) -> None:
        """Clear all cached entries and tags."""
        async with self._lock:
            self._entries.clear()
            self._tags.clear()

    async def close(self) -> None:
        """Nothing to release for memory."""

    def __len__(self) -> int:
        return len(self._entries)
