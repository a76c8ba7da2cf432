"""Core types for the Directus client."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx

if TYPE_CHECKING:
    from directus_sdk.errors import DirectusError

T = TypeVar("T")

# "30s", "5m", "24h", "1d", a timedelta, or milliseconds
Duration = str | int | timedelta

# Headers recomputed by httpx when a cached body is replayed
_REPLAY_EXCLUDED_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding"}
)


def now_ms() -> int:
    """Current wall-clock time as a Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Snapshot of a raw HTTP response stored under a cache key."""

    key: str
    created_at: int  # Unix timestamp ms
    valid_until: int  # Unix timestamp ms
    headers: dict[str, str]
    body: str
    status_code: int

    def __post_init__(self) -> None:
        if self.valid_until < self.created_at:
            raise ValueError("valid_until must not be earlier than created_at")

    @classmethod
    def from_response(
        cls,
        response: httpx.Response,
        *,
        key: str,
        max_cache_age: int,
    ) -> CacheEntry:
        """Wrap a received response; raises UnicodeDecodeError for binary bodies."""
        created_at = now_ms()
        return cls(
            key=key,
            created_at=created_at,
            valid_until=created_at + max_cache_age,
            headers=dict(response.headers.items()),
            body=response.content.decode("utf-8"),
            status_code=response.status_code,
        )

    def is_fresh(self, now: int | None = None) -> bool:
        """An entry expiring exactly now is already stale."""
        current = now_ms() if now is None else now
        return self.valid_until > current

    def to_response(self, request: httpx.Request) -> httpx.Response:
        """Rebuild an httpx.Response so parsers cannot tell it from a live one."""
        headers = {
            name: value
            for name, value in self.headers.items()
            if name.lower() not in _REPLAY_EXCLUDED_HEADERS
        }
        return httpx.Response(
            self.status_code,
            headers=headers,
            content=self.body.encode("utf-8"),
            request=request,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON layout."""
        return {
            "key": self.key,
            "createdAt": self.created_at,
            "validUntil": self.valid_until,
            "headers": self.headers,
            "body": self.body,
            "statusCode": self.status_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        """Deserialize from the persisted JSON layout."""
        return cls(
            key=data["key"],
            created_at=int(data["createdAt"]),
            valid_until=int(data["validUntil"]),
            headers={str(k): str(v) for k, v in data["headers"].items()},
            body=data["body"],
            status_code=int(data["statusCode"]),
        )


RequestFactory = Callable[[], Awaitable[httpx.Request]]


@dataclass(frozen=True, slots=True)
class PreparedRequest:
    """A request ready for dispatch plus the cache tags of its response."""

    request: httpx.Request | RequestFactory
    tags: tuple[str, ...] = ()

    async def resolve(self) -> httpx.Request:
        """Return the concrete request, awaiting a deferred factory if needed."""
        if isinstance(self.request, httpx.Request):
            return self.request
        return await self.request()


@dataclass(frozen=True, slots=True)
class RequestOptions:
    """Per-call cache behaviour."""

    can_use_cache_for_response: bool = False
    can_save_response_to_cache: bool = True
    can_use_old_cached_response_as_fallback: bool = True
    max_cache_age: Duration = "24h"
    request_identifier: str | None = None


NO_CACHE = RequestOptions(
    can_use_cache_for_response=False,
    can_save_response_to_cache=False,
    can_use_old_cached_response_as_fallback=False,
)


class LoginResultType(str, Enum):
    SUCCESS = "success"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_OTP = "invalid_otp"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Outcome of a login or refresh attempt."""

    type: LoginResultType
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.type is LoginResultType.SUCCESS


@dataclass(frozen=True, slots=True)
class ItemCreationResult(Generic[T]):
    """Items created by the server, or the error that prevented it."""

    items: list[T] = field(default_factory=list)
    error: DirectusError | None = None

    @classmethod
    def success(cls, items: list[T]) -> ItemCreationResult[T]:
        return cls(items=items)

    @classmethod
    def failure(cls, error: DirectusError) -> ItemCreationResult[T]:
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def created_item_list(self) -> list[T] | None:
        return self.items if self.error is None else None

    @property
    def created_item(self) -> T | None:
        if self.error is not None or not self.items:
            return None
        return self.items[0]
