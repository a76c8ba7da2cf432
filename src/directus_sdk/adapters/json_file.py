"""Durable cache store keeping one JSON file per entry."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from directus_sdk.tags import TagIndex
from directus_sdk.types import CacheEntry

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")
_MAX_READABLE_PART = 96
TAGS_FILENAME = "tags.json"


def sanitize_key(key: str) -> str:
    """Map a cache key to a filesystem-safe, collision-resistant file stem.

    Non-alphanumerics become "." for readability; a digest of the raw key keeps
    "GET /a?b" and "GET /a.b" apart.
    """
    readable = _UNSAFE_CHARS.sub(".", key)[:_MAX_READABLE_PART]
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return f"{readable}_{digest}"


def _atomic_write(path: Path, data: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".part")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        _unlink_if_exists(Path(tmp_name))
        raise


def _unlink_if_exists(path: Path) -> None:
    path.unlink(missing_ok=True)


class JsonFileCache:
    """Cache store persisting entries and the tag index as JSON files.

    Entry files are replaced atomically, so a concurrent reader sees either the
    previous entry or the new one. The tag index lives in memory, is mutated only
    while holding the store lock, and is rewritten atomically after each change.
    """

    def __init__(self, folder: str | os.PathLike[str]) -> None:
        self._folder = Path(folder)
        self._folder.mkdir(parents=True, exist_ok=True)
        self._tags = TagIndex()
        self._tags_loaded = False
        self._lock = asyncio.Lock()

    @property
    def folder(self) -> Path:
        return self._folder

    def path_for_key(self, key: str) -> Path:
        return self._folder / f"{sanitize_key(key)}.json"

    @property
    def _tags_path(self) -> Path:
        return self._folder / TAGS_FILENAME

    async def get(self, key: str) -> CacheEntry | None:
        """Read an entry; missing, unreadable and corrupt files are all misses."""
        path = self.path_for_key(key)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Unreadable cache entry %s: %s", path.name, e)
            return None
        try:
            entry = CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Corrupt cache entry %s: %s", path.name, e)
            return None
        if entry.key != key:
            return None
        return entry

    async def put(self, entry: CacheEntry, tags: list[str] | tuple[str, ...]) -> None:
        """Write the entry file, then register its key under each tag."""
        await asyncio.to_thread(
            _atomic_write, self.path_for_key(entry.key), json.dumps(entry.to_dict())
        )
        if not tags:
            return
        async with self._lock:
            await self._load_tags()
            for tag in tags:
                self._tags.add_entry(tag, entry.key)
            await self._save_tags()

    async def remove(self, key: str) -> None:
        """Delete an entry file if present."""
        await asyncio.to_thread(_unlink_if_exists, self.path_for_key(key))
        async with self._lock:
            await self._load_tags()
            if self._tags.discard_key(key):
                await self._save_tags()

    async def remove_by_tag(self, tag: str) -> None:
        """Delete all entries under tag and drop the tag from the index."""
        async with self._lock:
            await self._load_tags()
            keys = self._tags.get_entries_with_tag(tag)
            for key in keys:
                await asyncio.to_thread(_unlink_if_exists, self.path_for_key(key))
                self._tags.discard_key(key)
            if tag in self._tags or keys:
                self._tags.remove_all_entries_with_tag(tag)
                await self._save_tags()

    async def get_entries_with_tag(self, tag: str) -> list[str]:
        async with self._lock:
            await self._load_tags()
            return self._tags.get_entries_with_tag(tag)

    async def clear(self) -> None:
        """Delete every entry file and the tag index."""
        async with self._lock:
            await asyncio.to_thread(self._delete_all_files)
            self._tags.clear()
            self._tags_loaded = True

    async def close(self) -> None:
        """Files need no closing."""

    def _delete_all_files(self) -> None:
        for path in self._folder.glob("*.json"):
            _unlink_if_exists(path)

    async def _load_tags(self) -> None:
        if self._tags_loaded:
            return
        try:
            raw = await asyncio.to_thread(self._tags_path.read_text, encoding="utf-8")
            self._tags = TagIndex.from_json(raw)
        except FileNotFoundError:
            self._tags = TagIndex()
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable tag index: %s", e)
            self._tags = TagIndex()
        self._tags_loaded = True

    async def _save_tags(self) -> None:
        await asyncio.to_thread(_atomic_write, self._tags_path, self._tags.to_json())
