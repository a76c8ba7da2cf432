"""High-level Directus client."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Sequence
from types import TracebackType
from typing import Any, Generic, TypeVar

import httpx

from directus_sdk.adapters.base import AsyncCacheStore
from directus_sdk.api import DirectusAPI
from directus_sdk.engine import DEFAULT_OPTIONS, Parse, RequestEngine
from directus_sdk.errors import (
    AuthenticationRequiredError,
    DirectusError,
    ParseError,
)
from directus_sdk.filters import Filter, SortProperty
from directus_sdk.models import CollectionMetadata, DirectusData, DirectusFile, DirectusUser
from directus_sdk.tags import CUSTOM_REQUEST_TAG, item_tag
from directus_sdk.token import RefreshTokenLoader, RefreshTokenSaver, TokenState
from directus_sdk.types import (
    NO_CACHE,
    ItemCreationResult,
    LoginResult,
    PreparedRequest,
    RequestOptions,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DirectusData)
R = TypeVar("R")

CURRENT_USER_CACHE_KEY = "currentDirectusUser"

RequestBuilder = Callable[[], "httpx.Request | Awaitable[httpx.Request]"]


def _metadata_for(
    model: type[DirectusData], metadata: CollectionMetadata | None
) -> CollectionMetadata:
    resolved = metadata or model.collection_metadata
    if resolved is None:
        raise ValueError(
            f"{model.__name__} has no collection_metadata; pass metadata= explicitly"
        )
    return resolved


def _record_from(model: type[T], data: Any) -> T:
    if not isinstance(data, dict):
        raise ParseError(f"Expected a {model.__name__} object, got {type(data).__name__}")
    return model(data)


class DirectusApiManager:
    """Entry point for talking to a Directus server.

    Owns the token state, the request engine and (unless one is injected) the
    HTTP client. Use it as an async context manager, or call :meth:`aclose`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: AsyncCacheStore | None = None,
        api: DirectusAPI | None = None,
        save_refresh_token: RefreshTokenSaver | None = None,
        load_refresh_token: RefreshTokenLoader | None = None,
    ) -> None:
        if api is None:
            tokens = TokenState(
                load_refresh_token=load_refresh_token,
                save_refresh_token=save_refresh_token,
            )
            api = DirectusAPI(base_url, tokens)
        self._api = api
        self._tokens = api.tokens
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self._engine = RequestEngine(
            self._http_client, self._tokens, self._refresh_tokens, cache=cache
        )
        self._cached_current_user: DirectusUser | None = None

    async def __aenter__(self) -> DirectusApiManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the cache store and the HTTP client this manager created."""
        if self._engine.cache is not None:
            await self._engine.cache.close()
        if self._owns_http_client:
            await self._http_client.aclose()

    # -- state --------------------------------------------------------------

    @property
    def api(self) -> DirectusAPI:
        return self._api

    @property
    def engine(self) -> RequestEngine:
        return self._engine

    @property
    def base_url(self) -> str:
        return self._api.base_url

    @property
    def websocket_base_url(self) -> str:
        url = self.base_url
        if not url.startswith("http"):
            raise ValueError(f"Cannot derive a websocket URL from {url!r}")
        return f"ws{url[len('http'):]}/websocket"

    @property
    def should_refresh_token(self) -> bool:
        return self._tokens.should_refresh()

    @property
    def access_token(self) -> str | None:
        return self._tokens.access_token

    @property
    def refresh_token(self) -> str | None:
        return self._tokens.refresh_token

    @refresh_token.setter
    def refresh_token(self, value: str | None) -> None:
        self._tokens.refresh_token = value

    @property
    def cached_current_user(self) -> DirectusUser | None:
        return self._cached_current_user

    # -- authentication -----------------------------------------------------

    async def _refresh_tokens(self) -> bool:
        return await self._engine.send(
            self._api.prepare_refresh_token_request,
            self._api.parse_refresh_token_response,
            depends_on_token=False,
            options=NO_CACHE,
        )

    async def try_and_refresh_token(self) -> bool:
        """Exchange the refresh token for new tokens; concurrent calls share one request."""
        return await self._engine.refresh()

    async def has_logged_in_user(self) -> bool:
        return bool(await self._tokens.ensure_refresh_token())

    async def login(self, email: str, password: str, otp: str | None = None) -> LoginResult:
        await self.discard_current_user_cache()
        return await self._engine.send(
            lambda: self._api.prepare_login_request(email, password, otp),
            self._api.parse_login_response,
            depends_on_token=False,
            options=NO_CACHE,
        )

    async def logout(self) -> bool:
        """Revoke the refresh token on the server.

        Local tokens are forgotten even when the server cannot be reached.
        """
        prepared = await self._api.prepare_logout_request()
        if prepared is None:
            await self.discard_current_user_cache()
            return True
        try:
            result = await self._engine.send(
                lambda: prepared,
                self._api.parse_logout_response,
                depends_on_token=False,
                options=NO_CACHE,
            )
        except DirectusError as e:
            logger.warning("Logout request failed, forgetting local tokens: %s", e)
            self._tokens.clear()
            result = True
        await self.discard_current_user_cache()
        return result

    async def current_user(
        self, fields: str = "*", options: RequestOptions = DEFAULT_OPTIONS
    ) -> DirectusUser | None:
        """The logged-in user, fetched once and then kept until discarded.

        Raises AuthenticationRequiredError when there is no refresh token;
        any other failure is logged and gives None.
        """
        if self._cached_current_user is not None:
            return self._cached_current_user
        return await self._engine.coalesce(
            CURRENT_USER_CACHE_KEY, lambda: self._fetch_current_user(fields, options)
        )

    async def _fetch_current_user(
        self, fields: str, options: RequestOptions
    ) -> DirectusUser | None:
        if self._cached_current_user is not None:
            return self._cached_current_user
        if not await self.has_logged_in_user():
            raise AuthenticationRequiredError("No user is logged in")
        try:
            user = await self._engine.send(
                lambda: self._api.prepare_get_current_user_request(fields),
                self._parse_current_user,
                options=dataclasses.replace(options, request_identifier=CURRENT_USER_CACHE_KEY),
            )
        except DirectusError as e:
            logger.warning("Could not retrieve current user: %s", e)
            return None
        self._cached_current_user = user
        return user

    def _parse_current_user(self, response: httpx.Response) -> DirectusUser:
        return _record_from(DirectusUser, self._api.parse_get_specific_item_response(response))

    async def discard_current_user_cache(self) -> None:
        self._cached_current_user = None
        await self._engine.remove_cache_entry(CURRENT_USER_CACHE_KEY)

    # -- user management ----------------------------------------------------

    async def request_password_reset(self, email: str, reset_url: str | None = None) -> bool:
        """Ask the server to email a password reset link.

        A custom ``reset_url`` must be listed in the server's
        ``PASSWORD_RESET_URL_ALLOW_LIST``.
        """
        return await self._engine.send(
            lambda: self._api.prepare_password_reset_request(email, reset_url),
            self._api.parse_generic_bool_response,
            depends_on_token=False,
            options=NO_CACHE,
        )

    async def confirm_password_reset(self, token: str, password: str) -> bool:
        return await self._engine.send(
            lambda: self._api.prepare_password_change_request(token, password),
            self._api.parse_generic_bool_response,
            depends_on_token=False,
            options=NO_CACHE,
        )

    async def register_user(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> bool:
        return await self._engine.send(
            lambda: self._api.prepare_register_user_request(
                email, password, first_name, last_name
            ),
            self._api.parse_generic_bool_response,
            depends_on_token=False,
            options=NO_CACHE,
        )

    async def invite_user(self, email: str, role_id: str) -> bool:
        try:
            return await self._engine.send(
                lambda: self._api.prepare_user_invite_request(email, role_id),
                self._api.parse_user_invite_response,
                options=NO_CACHE,
            )
        except DirectusError as e:
            logger.warning("Invite for %s failed: %s", email, e)
            return False

    # -- items --------------------------------------------------------------

    async def find_list_of_items(
        self,
        model: type[T],
        *,
        filter: Filter | None = None,
        sort_by: Sequence[SortProperty] | None = None,
        fields: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
        options: RequestOptions = DEFAULT_OPTIONS,
        metadata: CollectionMetadata | None = None,
    ) -> list[T]:
        meta = _metadata_for(model, metadata)

        def parse(response: httpx.Response) -> list[T]:
            items = self._api.parse_get_list_of_items_response(response)
            return [_record_from(model, item) for item in items]

        return await self._engine.send(
            lambda: self._api.prepare_get_list_of_items_request(
                meta.endpoint_name,
                meta.endpoint_prefix,
                fields=fields or meta.default_fields,
                filter=filter,
                sort_by=sort_by,
                limit=limit,
                offset=offset,
            ),
            parse,
            options=options,
        )

    async def find_list_of_items_with_result(
        self,
        model: type[T],
        **kwargs: Any,
    ) -> tuple[list[T], None] | tuple[None, DirectusError]:
        """Like :meth:`find_list_of_items` but returns ``(items, None)`` or ``(None, error)``."""
        try:
            return await self.find_list_of_items(model, **kwargs), None
        except DirectusError as e:
            return None, e

    async def get_specific_item(
        self,
        model: type[T],
        item_id: str | int,
        *,
        fields: str | None = None,
        options: RequestOptions = DEFAULT_OPTIONS,
        metadata: CollectionMetadata | None = None,
    ) -> T | None:
        """Fetch one record, cached under ``<collection>/<id>`` unless overridden.

        Returns None when the server answers without a record.
        """
        meta = _metadata_for(model, metadata)
        key = options.request_identifier or item_tag(meta.endpoint_name, item_id)

        def parse(response: httpx.Response) -> T | None:
            data = self._api.parse_get_specific_item_response(response)
            if not isinstance(data, dict):
                return None
            return model(data)

        return await self._engine.send(
            lambda: self._api.prepare_get_specific_item_request(
                meta.endpoint_name,
                meta.endpoint_prefix,
                str(item_id),
                fields=fields or meta.default_fields,
                tags=(key,),
            ),
            parse,
            options=dataclasses.replace(options, request_identifier=key),
        )

    async def create_new_item(
        self,
        obj: T,
        *,
        fields: str | None = None,
        metadata: CollectionMetadata | None = None,
    ) -> ItemCreationResult[T]:
        model = type(obj)
        meta = _metadata_for(model, metadata)

        def parse(response: httpx.Response) -> ItemCreationResult[T]:
            if response.status_code == 204:
                return ItemCreationResult.success([])
            data = self._api.parse_create_new_item_response(response)
            if not isinstance(data, dict):
                return ItemCreationResult.failure(ParseError("Parse Error"))
            try:
                return ItemCreationResult.success([model(data)])
            except DirectusError as e:
                return ItemCreationResult.failure(e)

        return await self._engine.send(
            lambda: self._api.prepare_create_new_item_request(
                meta.endpoint_name,
                meta.endpoint_prefix,
                obj.map_for_object_creation(),
                fields=fields or meta.default_fields,
            ),
            parse,
            options=NO_CACHE,
        )

    async def create_multiple_items(
        self,
        objs: Sequence[T],
        *,
        fields: str | None = None,
        metadata: CollectionMetadata | None = None,
    ) -> ItemCreationResult[T]:
        if not objs:
            raise ValueError("objs must not be empty")
        model = type(objs[0])
        meta = _metadata_for(model, metadata)
        payload = [obj.map_for_object_creation() for obj in objs]

        def parse(response: httpx.Response) -> ItemCreationResult[T]:
            if response.status_code == 204:
                return ItemCreationResult.success([])
            data = self._api.parse_create_new_item_response(response)
            if isinstance(data, list):
                return ItemCreationResult.success([_record_from(model, item) for item in data])
            if isinstance(data, dict):
                return ItemCreationResult.success([model(data)])
            return ItemCreationResult.failure(ParseError("Parse Error"))

        return await self._engine.send(
            lambda: self._api.prepare_create_new_item_request(
                meta.endpoint_name,
                meta.endpoint_prefix,
                payload,
                fields=fields or meta.default_fields,
            ),
            parse,
            options=NO_CACHE,
        )

    async def update_item(
        self,
        obj: T,
        *,
        fields: str | None = None,
        force: bool = False,
        metadata: CollectionMetadata | None = None,
    ) -> T:
        """Send pending changes (every field with ``force``) and return the saved record.

        Nothing is sent when the record has no changes and ``force`` is false.
        """
        if not obj.needs_saving and not force:
            return obj
        model = type(obj)
        meta = _metadata_for(model, metadata)
        item_id = obj.id

        data = obj.to_map() if force else dict(obj.updated_properties)
        if meta.default_update_fields is not None and "*" not in meta.default_update_fields:
            allowed = set(meta.default_update_fields)
            data = {key: value for key, value in data.items() if key == "id" or key in allowed}
        default_fields = (
            ",".join(meta.default_update_fields)
            if meta.default_update_fields
            else meta.default_fields
        )

        def parse(response: httpx.Response) -> T:
            parsed = self._api.parse_update_item_response(response)
            if not isinstance(parsed, dict):
                raise ParseError("Update response carries no record")
            return model({**obj.raw_data, **parsed})

        updated = await self._engine.send(
            lambda: self._api.prepare_update_item_request(
                meta.endpoint_name,
                meta.endpoint_prefix,
                item_id,
                data,
                fields=fields or default_fields,
            ),
            parse,
            options=NO_CACHE,
        )
        await self._engine.invalidate_tag(item_tag(meta.endpoint_name, item_id))
        return updated

    async def delete_item(
        self,
        model: type[DirectusData],
        item_id: str | int,
        *,
        must_be_authenticated: bool = True,
        metadata: CollectionMetadata | None = None,
    ) -> bool:
        """True when the server deleted the record; any failure gives False."""
        meta = _metadata_for(model, metadata)
        try:
            deleted = await self._engine.send(
                lambda: self._api.prepare_delete_item_request(
                    meta.endpoint_name,
                    meta.endpoint_prefix,
                    str(item_id),
                    must_be_authenticated=must_be_authenticated,
                ),
                self._api.parse_generic_bool_response,
                options=NO_CACHE,
            )
        except DirectusError as e:
            logger.warning("Deleting %s/%s failed: %s", meta.endpoint_name, item_id, e)
            return False
        await self._engine.invalidate_tag(item_tag(meta.endpoint_name, item_id))
        return deleted

    async def delete_multiple_items(
        self,
        model: type[DirectusData],
        item_ids: Sequence[str | int],
        *,
        must_be_authenticated: bool = True,
        metadata: CollectionMetadata | None = None,
    ) -> bool:
        if not item_ids:
            raise ValueError("item_ids must not be empty")
        meta = _metadata_for(model, metadata)
        deleted = await self._engine.send(
            lambda: self._api.prepare_delete_multiple_items_request(
                meta.endpoint_name,
                meta.endpoint_prefix,
                list(item_ids),
                must_be_authenticated=must_be_authenticated,
            ),
            self._api.parse_generic_bool_response,
            options=NO_CACHE,
        )
        for item_id in item_ids:
            await self._engine.invalidate_tag(item_tag(meta.endpoint_name, item_id))
        return deleted

    def collection(
        self, model: type[T], metadata: CollectionMetadata | None = None
    ) -> CollectionClient[T]:
        return CollectionClient(self, model, _metadata_for(model, metadata))

    # -- files --------------------------------------------------------------

    async def get_file(self, file_id: str, options: RequestOptions = DEFAULT_OPTIONS) -> bytes:
        return await self._engine.send(
            lambda: self._api.prepare_file_download_request(file_id),
            self._api.parse_file_download_response,
            options=options,
        )

    def file_download_url(self, file: DirectusFile, **kwargs: Any) -> str:
        return file.download_url(self.base_url, **kwargs)

    async def upload_file(
        self,
        file_bytes: bytes,
        filename: str,
        *,
        title: str | None = None,
        content_type: str | None = None,
        folder: str | None = None,
        storage: str = "local",
    ) -> DirectusFile:
        return await self._engine.send(
            lambda: self._api.prepare_new_file_upload_request(
                file_bytes,
                filename,
                title=title,
                content_type=content_type,
                folder=folder,
                storage=storage,
            ),
            self._api.parse_file_upload_response,
            options=NO_CACHE,
        )

    async def upload_file_from_url(
        self,
        remote_url: str,
        *,
        title: str | None = None,
        folder: str | None = None,
    ) -> DirectusFile:
        return await self._engine.send(
            lambda: self._api.prepare_file_import_request(remote_url, title, folder),
            self._api.parse_file_upload_response,
            options=NO_CACHE,
        )

    async def update_existing_file(
        self,
        file_id: str,
        file_bytes: bytes,
        filename: str,
        *,
        content_type: str | None = None,
        title: str | None = None,
    ) -> DirectusFile:
        return await self._engine.send(
            lambda: self._api.prepare_update_file_request(
                file_id,
                filename,
                file_bytes=file_bytes,
                title=title,
                content_type=content_type,
            ),
            self._api.parse_file_upload_response,
            options=NO_CACHE,
        )

    async def delete_file(self, file_id: str) -> bool:
        return await self._engine.send(
            lambda: self._api.prepare_file_delete_request(file_id),
            self._api.parse_generic_bool_response,
            options=NO_CACHE,
        )

    # -- custom -------------------------------------------------------------

    async def send_request_to_endpoint(
        self,
        prepare: RequestBuilder,
        parse: Parse[R],
        options: RequestOptions = DEFAULT_OPTIONS,
    ) -> R:
        """Run a hand-built request through the same token and cache handling.

        Responses are tagged ``customRequest``.
        """

        async def prepared() -> PreparedRequest:
            request = prepare()
            if not isinstance(request, httpx.Request):
                request = await request
            return PreparedRequest(request, (CUSTOM_REQUEST_TAG,))

        return await self._engine.send(prepared, parse, options=options)


class CollectionClient(Generic[T]):
    """Item operations bound to one record type and its collection."""

    def __init__(
        self,
        manager: DirectusApiManager,
        model: type[T],
        metadata: CollectionMetadata,
    ) -> None:
        self._manager = manager
        self._model = model
        self._metadata = metadata

    @property
    def metadata(self) -> CollectionMetadata:
        return self._metadata

    async def find(self, **kwargs: Any) -> list[T]:
        return await self._manager.find_list_of_items(
            self._model, metadata=self._metadata, **kwargs
        )

    async def get(self, item_id: str | int, **kwargs: Any) -> T | None:
        return await self._manager.get_specific_item(
            self._model, item_id, metadata=self._metadata, **kwargs
        )

    async def create(self, obj: T, fields: str | None = None) -> ItemCreationResult[T]:
        return await self._manager.create_new_item(obj, fields=fields, metadata=self._metadata)

    async def create_many(
        self, objs: Sequence[T], fields: str | None = None
    ) -> ItemCreationResult[T]:
        return await self._manager.create_multiple_items(
            objs, fields=fields, metadata=self._metadata
        )

    async def update(self, obj: T, fields: str | None = None, force: bool = False) -> T:
        return await self._manager.update_item(
            obj, fields=fields, force=force, metadata=self._metadata
        )

    async def delete(self, item_id: str | int, must_be_authenticated: bool = True) -> bool:
        return await self._manager.delete_item(
            self._model,
            item_id,
            must_be_authenticated=must_be_authenticated,
            metadata=self._metadata,
        )

    async def delete_many(
        self, item_ids: Sequence[str | int], must_be_authenticated: bool = True
    ) -> bool:
        return await self._manager.delete_multiple_items(
            self._model,
            item_ids,
            must_be_authenticated=must_be_authenticated,
            metadata=self._metadata,
        )
