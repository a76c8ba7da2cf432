"""Cache stores for the Directus client (async only)."""

from contextlib import suppress

from directus_sdk.adapters.base import AsyncCacheStore
from directus_sdk.adapters.json_file import JsonFileCache
from directus_sdk.adapters.memory import AsyncMemoryCache

# The Redis store is only useful with the redis client installed
with suppress(ImportError):
    from directus_sdk.adapters.redis import AsyncRedisCache

__all__ = [
    "AsyncCacheStore",
    "AsyncMemoryCache",
    "AsyncRedisCache",
    "JsonFileCache",
]
