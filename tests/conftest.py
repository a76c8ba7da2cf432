"""Shared pytest fixtures."""

from collections.abc import AsyncIterator

import httpx
import pytest

from directus_sdk import AsyncMemoryCache, CacheEntry, DirectusApiManager, DirectusItem
from directus_sdk.models import CollectionMetadata
from directus_sdk.types import now_ms

BASE_URL = "http://api"


class Article(DirectusItem):
    collection_metadata = CollectionMetadata("article")

    @property
    def title(self) -> str | None:
        return self.get_str("title")

    @title.setter
    def title(self, value: str | None) -> None:
        self.set_value("title", value)


def make_entry(
    key: str,
    body: str = '{"data": {"id": "1"}}',
    *,
    valid_for: int = 60_000,
    status_code: int = 200,
    created_at: int | None = None,
) -> CacheEntry:
    """Build a cache entry; a negative ``valid_for`` gives an already expired one."""
    now = now_ms()
    created = created_at if created_at is not None else min(now, now + valid_for)
    return CacheEntry(
        key=key,
        created_at=created,
        valid_until=now + valid_for,
        headers={"content-type": "application/json"},
        body=body,
        status_code=status_code,
    )


def login_body(access: str = "A", refresh: str = "B", expires: int = 900_000) -> dict:
    return {"data": {"access_token": access, "refresh_token": refresh, "expires": expires}}


@pytest.fixture
def memory_cache() -> AsyncMemoryCache:
    """Create a fresh AsyncMemoryCache for each test."""
    return AsyncMemoryCache()


@pytest.fixture
async def manager(memory_cache: AsyncMemoryCache) -> AsyncIterator[DirectusApiManager]:
    """A manager against BASE_URL sharing ``memory_cache``; mock HTTP with respx."""
    async with httpx.AsyncClient() as client:
        yield DirectusApiManager(BASE_URL, http_client=client, cache=memory_cache)
