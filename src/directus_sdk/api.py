"""Request builders and response parsers for each Directus endpoint family.

Every ``prepare_*`` method returns a :class:`PreparedRequest` and every
``parse_*`` method consumes an :class:`httpx.Response`. Neither touches the
network; :class:`~directus_sdk.engine.RequestEngine` sits between them.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from directus_sdk.errors import (
    AuthenticationRequiredError,
    ParseError,
    ServerDeniedError,
    extract_error_messages,
)
from directus_sdk.filters import Filter, SortProperty, filter_to_json, sort_to_param
from directus_sdk.models import DirectusFile
from directus_sdk.token import TokenState
from directus_sdk.types import LoginResult, LoginResultType, PreparedRequest

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}

# Kept readable in URLs, and therefore in the default cache keys
_SAFE_QUERY_CHARS = "*,"


def _encode_query(params: Mapping[str, Any]) -> str:
    return urlencode(
        [(name, value) for name, value in params.items() if value is not None],
        quote_via=quote,
        safe=_SAFE_QUERY_CHARS,
    )


def _decode_json(response: httpx.Response) -> Any:
    try:
        return json.loads(response.content)
    except ValueError as e:
        raise ParseError(f"Response body is not valid JSON: {e}") from e


def _login_error_message(response: httpx.Response) -> str | None:
    messages = extract_error_messages(response.content)
    return "\n".join(messages) if messages else None


class DirectusAPI:
    """Stateless formatting of Directus requests around a shared :class:`TokenState`."""

    def __init__(self, base_url: str, token_state: TokenState) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = token_state

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def tokens(self) -> TokenState:
        return self._tokens

    def convert_path_to_full_url(self, path: str) -> str:
        if path.startswith("/"):
            return f"{self._base_url}{path}"
        return f"{self._base_url}/{path}"

    def _url(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        url = self.convert_path_to_full_url(path)
        query = _encode_query(params) if params else ""
        return f"{url}?{query}" if query else url

    def _headers(self, *, json_body: bool = False, authenticate: bool = True) -> dict[str, str]:
        headers = dict(_JSON_HEADERS) if json_body else {}
        if authenticate:
            headers.update(self._tokens.authorization_header())
        return headers

    def _json_request(
        self,
        method: str,
        path: str,
        payload: Any,
        *,
        params: Mapping[str, Any] | None = None,
        authenticate: bool = True,
    ) -> httpx.Request:
        return httpx.Request(
            method,
            self._url(path, params),
            headers=self._headers(json_body=True, authenticate=authenticate),
            content=json.dumps(payload, default=str).encode("utf-8"),
        )

    # -- auth ---------------------------------------------------------------

    def prepare_login_request(
        self, email: str, password: str, otp: str | None = None
    ) -> PreparedRequest:
        body: dict[str, str] = {"email": email, "password": password}
        if otp is not None:
            body["otp"] = otp
        return PreparedRequest(
            self._json_request("POST", "/auth/login", body, authenticate=False)
        )

    async def parse_login_response(self, response: httpx.Response) -> LoginResult:
        """Store the issued tokens and classify the outcome.

        Held tokens are dropped first, so a failed login leaves the client
        logged out.
        """
        self._tokens.clear()

        if response.status_code == 401:
            return self._classify_login_rejection(response)
        if response.status_code != 200:
            return LoginResult(LoginResultType.ERROR, _login_error_message(response))

        try:
            payload = json.loads(response.content)
        except ValueError:
            return LoginResult(LoginResultType.ERROR, _login_error_message(response))
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return LoginResult(LoginResultType.ERROR, _login_error_message(response))

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        expires = data.get("expires")
        await self._tokens.apply(
            access_token if isinstance(access_token, str) else None,
            refresh_token if isinstance(refresh_token, str) else None,
            expires if isinstance(expires, int) and not isinstance(expires, bool) else None,
        )
        if not self._tokens.has_tokens:
            return LoginResult(LoginResultType.ERROR, "Incomplete token response.")
        return LoginResult(LoginResultType.SUCCESS)

    @staticmethod
    def _classify_login_rejection(response: httpx.Response) -> LoginResult:
        message = _login_error_message(response)
        try:
            payload = json.loads(response.content)
        except ValueError:
            return LoginResult(LoginResultType.ERROR, message)
        try:
            code = payload["errors"][0]["extensions"]["code"]
        except (KeyError, IndexError, TypeError):
            return LoginResult(LoginResultType.ERROR, "Missing data field.")
        if code == "INVALID_CREDENTIALS":
            return LoginResult(LoginResultType.INVALID_CREDENTIALS, message)
        if code == "INVALID_OTP":
            return LoginResult(LoginResultType.INVALID_OTP, message)
        return LoginResult(LoginResultType.ERROR, message)

    def _stored_refresh_token_body(self) -> dict[str, str]:
        token = self._tokens.refresh_token
        if not token:
            raise AuthenticationRequiredError("Missing refresh token")
        return {"refresh_token": token}

    async def prepare_refresh_token_request(self) -> PreparedRequest:
        await self._tokens.ensure_refresh_token()
        body = self._stored_refresh_token_body()
        return PreparedRequest(
            self._json_request("POST", "/auth/refresh", body, authenticate=False)
        )

    async def parse_refresh_token_response(self, response: httpx.Response) -> bool:
        result = await self.parse_login_response(response)
        return result.is_success

    async def prepare_logout_request(self) -> PreparedRequest | None:
        """None when there is no refresh token to revoke."""
        await self._tokens.ensure_refresh_token()
        try:
            body = self._stored_refresh_token_body()
        except AuthenticationRequiredError:
            return None
        return PreparedRequest(
            self._json_request("POST", "/auth/logout", body, authenticate=False)
        )

    def parse_logout_response(self, response: httpx.Response) -> bool:
        if not response.is_success:
            return False
        self._tokens.clear()
        return True

    # -- items --------------------------------------------------------------

    def _prepare_get_request(
        self,
        path: str,
        *,
        fields: str = "*",
        filter: Filter | None = None,
        sort_by: Sequence[SortProperty] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        tags: Sequence[str] = (),
    ) -> PreparedRequest:
        params: dict[str, Any] = {"fields": fields}
        if filter is not None:
            params["filter"] = filter_to_json(filter)
        if limit is not None:
            params["limit"] = limit
        if sort_by:
            params["sort"] = sort_to_param(list(sort_by))
        if offset is not None:
            params["offset"] = offset
        request = httpx.Request("GET", self._url(path, params), headers=self._headers())
        return PreparedRequest(request, tuple(tags))

    def prepare_get_current_user_request(self, fields: str = "*") -> PreparedRequest:
        return self.prepare_get_specific_item_request("users", "/", "me", fields=fields)

    def prepare_get_list_of_items_request(
        self,
        endpoint_name: str,
        endpoint_prefix: str,
        *,
        fields: str = "*",
        filter: Filter | None = None,
        sort_by: Sequence[SortProperty] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> PreparedRequest:
        return self._prepare_get_request(
            f"{endpoint_prefix}{endpoint_name}",
            fields=fields,
            filter=filter,
            sort_by=sort_by,
            limit=limit,
            offset=offset,
        )

    def parse_get_list_of_items_response(self, response: httpx.Response) -> list[Any]:
        data = self._parse_generic_response(response)
        return data if isinstance(data, list) else []

    def prepare_get_specific_item_request(
        self,
        endpoint_name: str,
        endpoint_prefix: str,
        item_id: str,
        *,
        fields: str = "*",
        tags: Sequence[str] = (),
    ) -> PreparedRequest:
        return self._prepare_get_request(
            f"{endpoint_prefix}{endpoint_name}/{item_id}", fields=fields, tags=tags
        )

    def parse_get_specific_item_response(self, response: httpx.Response) -> Any:
        return self._parse_generic_response(response)

    def prepare_create_new_item_request(
        self,
        endpoint_name: str,
        endpoint_prefix: str,
        object_data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        *,
        fields: str = "*",
    ) -> PreparedRequest:
        payload = dict(object_data) if isinstance(object_data, Mapping) else [
            dict(item) for item in object_data
        ]
        return PreparedRequest(
            self._json_request(
                "POST", f"{endpoint_prefix}{endpoint_name}", payload, params={"fields": fields}
            )
        )

    def parse_create_new_item_response(self, response: httpx.Response) -> Any:
        return self._parse_generic_response(response)

    def prepare_update_item_request(
        self,
        endpoint_name: str,
        endpoint_prefix: str,
        item_id: str,
        object_data: Mapping[str, Any],
        *,
        fields: str = "*",
    ) -> PreparedRequest:
        return PreparedRequest(
            self._json_request(
                "PATCH",
                f"{endpoint_prefix}{endpoint_name}/{item_id}",
                dict(object_data),
                params={"fields": fields},
            )
        )

    def parse_update_item_response(self, response: httpx.Response) -> Any:
        return self._parse_generic_response(response)

    def prepare_delete_item_request(
        self,
        endpoint_name: str,
        endpoint_prefix: str,
        item_id: str,
        *,
        must_be_authenticated: bool = False,
    ) -> PreparedRequest:
        request = httpx.Request(
            "DELETE",
            self._url(f"{endpoint_prefix}{endpoint_name}/{item_id}"),
            headers=self._headers(authenticate=must_be_authenticated),
        )
        return PreparedRequest(request)

    def prepare_delete_multiple_items_request(
        self,
        endpoint_name: str,
        endpoint_prefix: str,
        item_ids: Sequence[Any],
        *,
        must_be_authenticated: bool = False,
    ) -> PreparedRequest:
        return PreparedRequest(
            self._json_request(
                "DELETE",
                f"{endpoint_prefix}{endpoint_name}",
                list(item_ids),
                authenticate=must_be_authenticated,
            )
        )

    # -- users --------------------------------------------------------------

    def prepare_user_invite_request(self, email: str, role_id: str) -> PreparedRequest:
        return PreparedRequest(
            self._json_request("POST", "/users/invite", {"email": email, "role": role_id})
        )

    def parse_user_invite_response(self, response: httpx.Response) -> bool:
        return response.status_code == 200

    def prepare_register_user_request(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> PreparedRequest:
        body: dict[str, str] = {"email": email, "password": password}
        if first_name is not None:
            body["first_name"] = first_name
        if last_name is not None:
            body["last_name"] = last_name
        return PreparedRequest(
            self._json_request("POST", "/users/register", body, authenticate=False)
        )

    def prepare_password_reset_request(
        self, email: str, reset_url: str | None = None
    ) -> PreparedRequest:
        body: dict[str, str] = {"email": email}
        if reset_url is not None:
            body["reset_url"] = reset_url
        return PreparedRequest(
            self._json_request("POST", "/auth/password/request", body, authenticate=False)
        )

    def prepare_password_change_request(self, token: str, new_password: str) -> PreparedRequest:
        return PreparedRequest(
            self._json_request(
                "POST",
                "/auth/password/reset",
                {"token": token, "password": new_password},
                authenticate=False,
            )
        )

    # -- files --------------------------------------------------------------

    def prepare_file_download_request(self, file_id: str) -> PreparedRequest:
        request = httpx.Request("GET", self._url(f"/assets/{file_id}"), headers=self._headers())
        return PreparedRequest(request)

    def parse_file_download_response(self, response: httpx.Response) -> bytes:
        self._raise_if_server_denied(response)
        return response.content

    def prepare_file_import_request(
        self, url: str, title: str | None = None, folder: str | None = None
    ) -> PreparedRequest:
        data = {
            name: value
            for name, value in (("title", title), ("folder", folder))
            if value is not None
        }
        return PreparedRequest(
            self._json_request("POST", "/files/import", {"url": url, "data": data})
        )

    def prepare_new_file_upload_request(
        self,
        file_bytes: bytes,
        filename: str,
        *,
        title: str | None = None,
        content_type: str | None = None,
        folder: str | None = None,
        storage: str = "local",
    ) -> PreparedRequest:
        return PreparedRequest(
            self._multipart_file_request(
                "POST",
                "/files",
                file_bytes=file_bytes,
                filename=filename,
                title=title,
                content_type=content_type,
                folder=folder,
                storage=storage,
            )
        )

    def prepare_update_file_request(
        self,
        file_id: str,
        filename: str,
        *,
        file_bytes: bytes | None = None,
        title: str | None = None,
        content_type: str | None = None,
    ) -> PreparedRequest:
        return PreparedRequest(
            self._multipart_file_request(
                "PATCH",
                f"/files/{file_id}",
                file_bytes=file_bytes,
                filename=filename,
                title=title,
                content_type=content_type,
            )
        )

    def _multipart_file_request(
        self,
        method: str,
        path: str,
        *,
        file_bytes: bytes | None,
        filename: str,
        title: str | None = None,
        content_type: str | None = None,
        folder: str | None = None,
        storage: str = "local",
    ) -> httpx.Request:
        # Directus reads every field sent before the file part, so the file goes last
        fields: dict[str, str] = {"storage": storage}
        if title is not None:
            fields["title"] = title
        if folder is not None:
            fields["folder"] = folder
        if file_bytes is None:
            return self._json_request(method, path, fields)
        file_part = (
            (filename, file_bytes, content_type) if content_type else (filename, file_bytes)
        )
        return httpx.Request(
            method,
            self._url(path),
            headers=self._headers(),
            data=fields,
            files={"file": file_part},
        )

    def parse_file_upload_response(self, response: httpx.Response) -> DirectusFile:
        self._raise_if_server_denied(response)
        payload = _decode_json(response)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ParseError("File response carries no file record")
        return DirectusFile(data)

    def prepare_file_delete_request(self, file_id: str) -> PreparedRequest:
        request = httpx.Request("DELETE", self._url(f"/files/{file_id}"), headers=self._headers())
        return PreparedRequest(request)

    # -- generic ------------------------------------------------------------

    def parse_generic_bool_response(self, response: httpx.Response) -> bool:
        self._raise_if_server_denied(response)
        return True

    @staticmethod
    def _raise_if_server_denied(response: httpx.Response) -> None:
        if not response.is_success:
            raise ServerDeniedError.from_body(response.status_code, response.content)

    @staticmethod
    def _parse_generic_response(response: httpx.Response) -> Any:
        """The ``data`` member of a 200 envelope."""
        if response.status_code != 200:
            raise ServerDeniedError.from_body(response.status_code, response.content)
        payload = _decode_json(response)
        if not isinstance(payload, dict):
            raise ParseError("Response body is not a JSON object")
        return payload.get("data")
