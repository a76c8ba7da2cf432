"""Request lifecycle: token pre-check, cache read, dispatch, cache write, stale fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from directus_sdk._awaitable import maybe_await
from directus_sdk.adapters.base import AsyncCacheStore
from directus_sdk.duration import parse_duration
from directus_sdk.errors import TransportError
from directus_sdk.token import TokenState
from directus_sdk.types import CacheEntry, PreparedRequest, RequestOptions

logger = logging.getLogger(__name__)

R = TypeVar("R")

Prepare = Callable[[], PreparedRequest | Awaitable[PreparedRequest]]
Parse = Callable[[httpx.Response], R | Awaitable[R]]

DEFAULT_OPTIONS = RequestOptions()


def default_cache_key(request: httpx.Request) -> str:
    """``"<METHOD> <URL>"``: identical GETs share one cache entry."""
    return f"{request.method} {request.url}"


class RequestEngine:
    """Runs every outgoing call through one fixed sequence of steps.

    1. refresh the access token first when the call needs it and it is due
       (failures are logged, the call still goes out);
    2. build the request;
    3. answer from a fresh cache entry when the caller allows it;
    4. send it;
    5. store the raw response when the caller allows it;
    6. parse and return;
    7. on a transport failure, parse a cached entry of any age instead.

    The cache is optional. Cache failures are logged and treated as misses.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_state: TokenState,
        refresh: Callable[[], Awaitable[bool]],
        cache: AsyncCacheStore | None = None,
    ) -> None:
        self._client = http_client
        self._tokens = token_state
        self._refresh = refresh
        self._cache = cache
        self._refresh_task: asyncio.Task[bool] | None = None
        self._in_flight: dict[str, asyncio.Future[Any]] = {}

    @property
    def cache(self) -> AsyncCacheStore | None:
        return self._cache

    async def send(
        self,
        prepare: Prepare,
        parse: Parse[R],
        *,
        depends_on_token: bool = True,
        options: RequestOptions = DEFAULT_OPTIONS,
    ) -> R:
        if depends_on_token and self._tokens.should_refresh():
            await self.refresh()

        prepared = await maybe_await(prepare())
        request = await prepared.resolve()
        key = options.request_identifier or default_cache_key(request)

        cached: CacheEntry | None = None
        if self._cache is not None and options.can_use_cache_for_response:
            cached = await self._read_cache(key)
            if cached is not None and cached.is_fresh():
                logger.debug("Cache hit for %s", key)
                return await maybe_await(parse(cached.to_response(request)))
            logger.debug("Cache miss for %s", key)

        try:
            response = await self._client.send(request)
        except httpx.TransportError as e:
            if self._cache is not None and options.can_use_old_cached_response_as_fallback:
                if cached is None:
                    cached = await self._read_cache(key)
                if cached is not None:
                    logger.debug("Transport failed for %s, using cached response: %s", key, e)
                    return await maybe_await(parse(cached.to_response(request)))
            raise TransportError(str(e) or type(e).__name__) from e

        if self._cache is not None and options.can_save_response_to_cache:
            await self._write_cache(
                response, key, parse_duration(options.max_cache_age), prepared.tags
            )

        return await maybe_await(parse(response))

    async def refresh(self) -> bool:
        """Refresh the tokens, joining the refresh already in flight if any.

        Returns whether new tokens were obtained. Errors are logged, never raised.
        """
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._run_refresh())
            self._refresh_task = task
        return await asyncio.shield(task)

    async def _run_refresh(self) -> bool:
        try:
            return await self._refresh()
        except Exception as e:
            logger.warning("Token refresh failed: %s", e)
            return False
        finally:
            self._refresh_task = None

    async def coalesce(self, key: str, fetch: Callable[[], Awaitable[R]]) -> R:
        """Share one in-flight ``fetch()`` between concurrent callers of ``key``."""
        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.ensure_future(fetch())
            self._in_flight[key] = future
            future.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await asyncio.shield(future)

    async def remove_cache_entry(self, key: str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.remove(key)
        except Exception as e:
            logger.warning("Failed to remove cache entry %s: %s", key, e)

    async def invalidate_tag(self, tag: str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.remove_by_tag(tag)
        except Exception as e:
            logger.warning("Failed to invalidate cache tag %s: %s", tag, e)
        else:
            logger.debug("Invalidated cache tag %s", tag)

    async def _read_cache(self, key: str) -> CacheEntry | None:
        assert self._cache is not None
        try:
            return await self._cache.get(key)
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

    async def _write_cache(
        self,
        response: httpx.Response,
        key: str,
        max_cache_age: int,
        tags: tuple[str, ...],
    ) -> None:
        assert self._cache is not None
        try:
            entry = CacheEntry.from_response(response, key=key, max_cache_age=max_cache_age)
        except UnicodeDecodeError:
            logger.debug("Not caching binary response for %s", key)
            return
        try:
            await self._cache.put(entry, tags)
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", key, e)
        else:
            logger.debug("Cached response for %s", key)
