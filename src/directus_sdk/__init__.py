"""directus-sdk - Async Directus client with tag-invalidated response caching."""

from contextlib import suppress

# Cache stores
from directus_sdk.adapters import AsyncCacheStore, AsyncMemoryCache, JsonFileCache
from directus_sdk.api import DirectusAPI

# Duration parsing
from directus_sdk.duration import parse_duration
from directus_sdk.engine import RequestEngine, default_cache_key

# Errors
from directus_sdk.errors import (
    AuthenticationRequiredError,
    DirectusError,
    MissingIdError,
    ParseError,
    ServerDeniedError,
    TransportError,
    TypeMismatchError,
)

# Query building
from directus_sdk.filters import (
    FilterOperator,
    LogicalOperator,
    LogicalOperatorFilter,
    PropertyFilter,
    RelationFilter,
    SortProperty,
)
from directus_sdk.manager import CollectionClient, DirectusApiManager

# Records
from directus_sdk.models import (
    CollectionMetadata,
    DirectusData,
    DirectusFile,
    DirectusGeometry,
    DirectusItem,
    DirectusUser,
    UserStatus,
)
from directus_sdk.tags import TagIndex, item_tag
from directus_sdk.token import TokenState

# Core types
from directus_sdk.types import (
    NO_CACHE,
    CacheEntry,
    Duration,
    ItemCreationResult,
    LoginResult,
    LoginResultType,
    PreparedRequest,
    RequestOptions,
)
from directus_sdk.websocket import DirectusWebSocket, WebSocketSubscription

# Optional cache store - only available when redis is installed
with suppress(ImportError):
    from directus_sdk.adapters import AsyncRedisCache

__version__ = "0.1.0"

__all__ = [
    "NO_CACHE",
    "AsyncCacheStore",
    "AsyncMemoryCache",
    "AsyncRedisCache",
    "AuthenticationRequiredError",
    "CacheEntry",
    "CollectionClient",
    "CollectionMetadata",
    "DirectusAPI",
    "DirectusApiManager",
    "DirectusData",
    "DirectusError",
    "DirectusFile",
    "DirectusGeometry",
    "DirectusItem",
    "DirectusUser",
    "DirectusWebSocket",
    "Duration",
    "FilterOperator",
    "ItemCreationResult",
    "JsonFileCache",
    "LogicalOperator",
    "LogicalOperatorFilter",
    "LoginResult",
    "LoginResultType",
    "MissingIdError",
    "ParseError",
    "PreparedRequest",
    "PropertyFilter",
    "RelationFilter",
    "RequestEngine",
    "RequestOptions",
    "ServerDeniedError",
    "SortProperty",
    "TagIndex",
    "TokenState",
    "TransportError",
    "TypeMismatchError",
    "UserStatus",
    "WebSocketSubscription",
    "default_cache_key",
    "item_tag",
    "parse_duration",
]
