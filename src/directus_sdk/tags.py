"""Cache tags and the tag -> cache key index."""

from __future__ import annotations

import json

CUSTOM_REQUEST_TAG = "customRequest"


def item_tag(collection: str, item_id: object) -> str:
    """Tag shared by every cache entry describing one record.

    Example:
        item_tag("articles", 42)  # "articles/42"
    """
    return f"{collection}/{item_id}"


class TagIndex:
    """Maps each tag to the set of cache keys stored with it."""

    __slots__ = ("_entries",)

    def __init__(self, entries: dict[str, set[str]] | None = None) -> None:
        self._entries: dict[str, set[str]] = {
            tag: set(keys) for tag, keys in (entries or {}).items() if keys
        }

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def add_entry(self, tag: str, key: str) -> None:
        """Register key under tag. Registering the same pair twice is a no-op."""
        self._entries.setdefault(tag, set()).add(key)

    def get_entries_with_tag(self, tag: str) -> list[str]:
        """Keys registered under tag, sorted."""
        return sorted(self._entries.get(tag, ()))

    def remove_all_entries_with_tag(self, tag: str) -> None:
        self._entries.pop(tag, None)

    def discard_key(self, key: str) -> bool:
        """Forget key under every tag, dropping tags left empty.

        Returns True if the index changed.
        """
        changed = False
        for tag in list(self._entries):
            keys = self._entries[tag]
            if key in keys:
                keys.discard(key)
                changed = True
                if not keys:
                    del self._entries[tag]
        return changed

    def clear(self) -> None:
        self._entries.clear()

    def to_dict(self) -> dict[str, list[str]]:
        return {tag: sorted(keys) for tag, keys in sorted(self._entries.items())}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: str | bytes) -> TagIndex:
        """Load an index; raises ValueError if the document is not a tag map."""
        raw = json.loads(data)
        if not isinstance(raw, dict):
            raise ValueError("Tag index must be a JSON object")
        entries: dict[str, set[str]] = {}
        for tag, keys in raw.items():
            if not isinstance(keys, list):
                raise ValueError(f"Tag {tag!r} must map to a list of keys")
            entries[str(tag)] = {str(key) for key in keys}
        return cls(entries)

    def __contains__(self, tag: object) -> bool:
        return tag in self._entries

    def __len__(self) -> int:
        return len(self._entries)
