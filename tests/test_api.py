"""Tests for request builders and response parsers."""

import json
import time

import httpx
import pytest

from directus_sdk import (
    AuthenticationRequiredError,
    DirectusAPI,
    FilterOperator,
    LoginResultType,
    ParseError,
    PropertyFilter,
    ServerDeniedError,
    SortProperty,
    TokenState,
)

from conftest import BASE_URL, login_body


@pytest.fixture
def tokens() -> TokenState:
    return TokenState()


@pytest.fixture
def api(tokens: TokenState) -> DirectusAPI:
    return DirectusAPI(BASE_URL + "/", tokens)


def response(status: int, body: object | None = None, content: bytes | None = None) -> httpx.Response:
    if content is not None:
        return httpx.Response(status, content=content)
    if body is None:
        return httpx.Response(status)
    return httpx.Response(status, json=body)


def invalid_login_body(code: str, message: str = "Invalid user credentials.") -> dict:
    return {"errors": [{"message": message, "extensions": {"code": code}}]}


class TestLogin:
    """Tests for login request and response handling."""

    def test_request(self, api: DirectusAPI) -> None:
        request = api.prepare_login_request("a@b.c", "pw").request
        assert isinstance(request, httpx.Request)
        assert request.method == "POST"
        assert str(request.url) == "http://api/auth/login"
        assert request.headers["content-type"] == "application/json"
        assert "authorization" not in request.headers
        assert json.loads(request.content) == {"email": "a@b.c", "password": "pw"}

    def test_request_with_otp(self, api: DirectusAPI) -> None:
        request = api.prepare_login_request("a@b.c", "pw", otp="123456").request
        assert isinstance(request, httpx.Request)
        assert json.loads(request.content)["otp"] == "123456"

    async def test_success(self, api: DirectusAPI, tokens: TokenState) -> None:
        """Test that a 200 login stores both tokens and the expiry."""
        result = await api.parse_login_response(response(200, login_body("A", "B", 900_000)))
        assert result.type is LoginResultType.SUCCESS
        assert tokens.access_token == "A"
        assert tokens.refresh_token == "B"
        assert tokens.access_token_expiry is not None
        assert abs(tokens.access_token_expiry - (time.time() + 900)) < 5

    async def test_invalid_credentials(self, api: DirectusAPI, tokens: TokenState) -> None:
        result = await api.parse_login_response(
            response(401, invalid_login_body("INVALID_CREDENTIALS"))
        )
        assert result.type is LoginResultType.INVALID_CREDENTIALS
        assert result.message == "Invalid user credentials."
        assert tokens.access_token is None
        assert tokens.refresh_token is None

    async def test_invalid_otp(self, api: DirectusAPI) -> None:
        result = await api.parse_login_response(
            response(401, invalid_login_body("INVALID_OTP", "Invalid user OTP."))
        )
        assert result.type is LoginResultType.INVALID_OTP
        assert result.message == "Invalid user OTP."

    async def test_other_401_code(self, api: DirectusAPI) -> None:
        result = await api.parse_login_response(
            response(401, invalid_login_body("USER_SUSPENDED", "User suspended."))
        )
        assert result.type is LoginResultType.ERROR
        assert result.message == "User suspended."

    async def test_401_without_code(self, api: DirectusAPI) -> None:
        result = await api.parse_login_response(
            response(401, {"errors": [{"message": "Nope"}]})
        )
        assert result.type is LoginResultType.ERROR
        assert result.message == "Missing data field."

    async def test_server_error(self, api: DirectusAPI) -> None:
        result = await api.parse_login_response(
            response(500, {"errors": [{"message": "a"}, {"message": "b"}]})
        )
        assert result.type is LoginResultType.ERROR
        assert result.message == "a\nb"

    async def test_incomplete_tokens(self, api: DirectusAPI) -> None:
        result = await api.parse_login_response(
            response(200, {"data": {"access_token": "A", "expires": 1000}})
        )
        assert result.type is LoginResultType.ERROR
        assert result.message == "Incomplete token response."

    async def test_failed_login_clears_previous_tokens(
        self, api: DirectusAPI, tokens: TokenState
    ) -> None:
        tokens.access_token = "old"
        tokens.refresh_token = "old"
        await api.parse_login_response(response(401, invalid_login_body("INVALID_CREDENTIALS")))
        assert tokens.access_token is None
        assert tokens.refresh_token is None


class TestRefreshAndLogout:
    async def test_refresh_request(self, api: DirectusAPI, tokens: TokenState) -> None:
        tokens.refresh_token = "R"
        request = (await api.prepare_refresh_token_request()).request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/auth/refresh"
        assert json.loads(request.content) == {"refresh_token": "R"}

    async def test_refresh_hydrates_from_loader(self) -> None:
        api = DirectusAPI(BASE_URL, TokenState(load_refresh_token=lambda: "stored"))
        request = (await api.prepare_refresh_token_request()).request
        assert isinstance(request, httpx.Request)
        assert json.loads(request.content) == {"refresh_token": "stored"}

    async def test_refresh_without_token(self, api: DirectusAPI) -> None:
        with pytest.raises(AuthenticationRequiredError):
            await api.prepare_refresh_token_request()

    async def test_refresh_with_empty_loaded_token(self) -> None:
        """Test that an empty stored token fails preparation."""
        api = DirectusAPI(BASE_URL, TokenState(load_refresh_token=lambda: ""))
        with pytest.raises(AuthenticationRequiredError):
            await api.prepare_refresh_token_request()

    async def test_refresh_response(self, api: DirectusAPI, tokens: TokenState) -> None:
        assert await api.parse_refresh_token_response(response(200, login_body("A2", "B2")))
        assert tokens.access_token == "A2"
        assert not await api.parse_refresh_token_response(response(401, {"errors": []}))

    async def test_logout_without_token(self, api: DirectusAPI) -> None:
        assert await api.prepare_logout_request() is None

    async def test_logout(self, api: DirectusAPI, tokens: TokenState) -> None:
        tokens.access_token = "A"
        tokens.refresh_token = "R"
        prepared = await api.prepare_logout_request()
        assert prepared is not None
        assert isinstance(prepared.request, httpx.Request)
        assert str(prepared.request.url) == "http://api/auth/logout"
        assert json.loads(prepared.request.content) == {"refresh_token": "R"}

        assert not api.parse_logout_response(response(500))
        assert tokens.has_tokens
        assert api.parse_logout_response(response(204))
        assert tokens.access_token is None
        assert tokens.refresh_token is None


class TestItemRequests:
    """Tests for CRUD request formatting."""

    def test_list_request_url(self, api: DirectusAPI) -> None:
        prepared = api.prepare_get_list_of_items_request("article", "/items/")
        assert isinstance(prepared.request, httpx.Request)
        assert str(prepared.request.url) == "http://api/items/article?fields=*"

    def test_list_request_with_query(self, api: DirectusAPI) -> None:
        prepared = api.prepare_get_list_of_items_request(
            "article",
            "/items/",
            fields="id,title",
            filter=PropertyFilter("status", FilterOperator.EQUALS, "published"),
            sort_by=[SortProperty("date", ascending=False), SortProperty("title")],
            limit=10,
            offset=20,
        )
        request = prepared.request
        assert isinstance(request, httpx.Request)
        params = request.url.params
        assert params["fields"] == "id,title"
        assert json.loads(params["filter"]) == {"status": {"_eq": "published"}}
        assert params["sort"] == "-date,title"
        assert params["limit"] == "10"
        assert params["offset"] == "20"

    def test_bearer_header_when_logged_in(self, api: DirectusAPI, tokens: TokenState) -> None:
        tokens.access_token = "A"
        request = api.prepare_get_list_of_items_request("article", "/items/").request
        assert isinstance(request, httpx.Request)
        assert request.headers["authorization"] == "Bearer A"

    def test_specific_item_carries_tags(self, api: DirectusAPI) -> None:
        prepared = api.prepare_get_specific_item_request(
            "article", "/items/", "42", tags=("article/42",)
        )
        assert isinstance(prepared.request, httpx.Request)
        assert str(prepared.request.url) == "http://api/items/article/42?fields=*"
        assert prepared.tags == ("article/42",)

    def test_current_user_request(self, api: DirectusAPI) -> None:
        request = api.prepare_get_current_user_request().request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/users/me?fields=*"

    def test_create_request(self, api: DirectusAPI) -> None:
        request = api.prepare_create_new_item_request(
            "article", "/items/", {"title": "T"}, fields="id"
        ).request
        assert isinstance(request, httpx.Request)
        assert request.method == "POST"
        assert str(request.url) == "http://api/items/article?fields=id"
        assert json.loads(request.content) == {"title": "T"}

    def test_create_many_request(self, api: DirectusAPI) -> None:
        request = api.prepare_create_new_item_request(
            "article", "/items/", [{"title": "A"}, {"title": "B"}]
        ).request
        assert isinstance(request, httpx.Request)
        assert json.loads(request.content) == [{"title": "A"}, {"title": "B"}]

    def test_update_request(self, api: DirectusAPI) -> None:
        request = api.prepare_update_item_request(
            "article", "/items/", "42", {"title": "T"}
        ).request
        assert isinstance(request, httpx.Request)
        assert request.method == "PATCH"
        assert str(request.url) == "http://api/items/article/42?fields=*"

    def test_delete_authenticates_only_on_demand(
        self, api: DirectusAPI, tokens: TokenState
    ) -> None:
        tokens.access_token = "A"
        anonymous = api.prepare_delete_item_request("article", "/items/", "42").request
        authenticated = api.prepare_delete_item_request(
            "article", "/items/", "42", must_be_authenticated=True
        ).request
        assert isinstance(anonymous, httpx.Request)
        assert isinstance(authenticated, httpx.Request)
        assert "authorization" not in anonymous.headers
        assert authenticated.headers["authorization"] == "Bearer A"
        assert str(anonymous.url) == "http://api/items/article/42"

    def test_bulk_delete_request(self, api: DirectusAPI) -> None:
        request = api.prepare_delete_multiple_items_request(
            "article", "/items/", ["1", "2"]
        ).request
        assert isinstance(request, httpx.Request)
        assert request.method == "DELETE"
        assert str(request.url) == "http://api/items/article"
        assert json.loads(request.content) == ["1", "2"]


class TestItemParsing:
    def test_list_response(self, api: DirectusAPI) -> None:
        parsed = api.parse_get_list_of_items_response(response(200, {"data": [{"id": 1}]}))
        assert parsed == [{"id": 1}]

    def test_list_response_without_list(self, api: DirectusAPI) -> None:
        assert api.parse_get_list_of_items_response(response(200, {"data": None})) == []

    def test_non_200_raises_server_denied(self, api: DirectusAPI) -> None:
        with pytest.raises(ServerDeniedError) as exc_info:
            api.parse_get_specific_item_response(
                response(403, {"errors": [{"message": "Forbidden"}, {"message": "Really"}]})
            )
        assert exc_info.value.status_code == 403
        assert exc_info.value.messages == ["Forbidden", "Really"]
        assert str(exc_info.value) == "Forbidden, Really"

    def test_malformed_body_raises_parse_error(self, api: DirectusAPI) -> None:
        with pytest.raises(ParseError):
            api.parse_get_specific_item_response(response(200, content=b"<html>"))
        with pytest.raises(ParseError):
            api.parse_get_specific_item_response(response(200, [1, 2]))

    def test_generic_bool(self, api: DirectusAPI) -> None:
        assert api.parse_generic_bool_response(response(204))
        with pytest.raises(ServerDeniedError, match="HTTP code: 500"):
            api.parse_generic_bool_response(response(500, content=b""))

    def test_invite_response(self, api: DirectusAPI) -> None:
        assert api.parse_user_invite_response(response(200))
        assert not api.parse_user_invite_response(response(204))


class TestUserRequests:
    def test_invite(self, api: DirectusAPI) -> None:
        request = api.prepare_user_invite_request("a@b.c", "role-1").request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/users/invite"
        assert json.loads(request.content) == {"email": "a@b.c", "role": "role-1"}

    def test_register(self, api: DirectusAPI) -> None:
        request = api.prepare_register_user_request("a@b.c", "pw", first_name="Ada").request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/users/register"
        assert json.loads(request.content) == {
            "email": "a@b.c",
            "password": "pw",
            "first_name": "Ada",
        }

    def test_password_reset(self, api: DirectusAPI) -> None:
        request = api.prepare_password_reset_request("a@b.c", "https://app/reset").request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/auth/password/request"
        assert json.loads(request.content) == {
            "email": "a@b.c",
            "reset_url": "https://app/reset",
        }

    def test_password_change(self, api: DirectusAPI) -> None:
        request = api.prepare_password_change_request("tok", "new").request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/auth/password/reset"
        assert json.loads(request.content) == {"token": "tok", "password": "new"}


class TestFileRequests:
    def test_download(self, api: DirectusAPI) -> None:
        request = api.prepare_file_download_request("f1").request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/assets/f1"

    def test_import_drops_missing_fields(self, api: DirectusAPI) -> None:
        request = api.prepare_file_import_request("https://x/y.png", title="Y").request
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "http://api/files/import"
        assert json.loads(request.content) == {"url": "https://x/y.png", "data": {"title": "Y"}}

    def test_upload_is_multipart_with_file_last(self, api: DirectusAPI) -> None:
        request = api.prepare_new_file_upload_request(
            b"PNGDATA", "y.png", title="Y", content_type="image/png", folder="fold"
        ).request
        assert isinstance(request, httpx.Request)
        assert request.method == "POST"
        assert str(request.url) == "http://api/files"
        assert request.headers["content-type"].startswith("multipart/form-data; boundary=")
        body = request.read()
        assert b'name="storage"' in body
        assert b'name="title"' in body
        assert b'name="folder"' in body
        assert b'filename="y.png"' in body
        assert b"Content-Type: image/png" in body
        assert body.index(b'name="folder"') < body.index(b'name="file"')

    def test_update_file(self, api: DirectusAPI) -> None:
        request = api.prepare_update_file_request("f1", "y.png", file_bytes=b"x").request
        assert isinstance(request, httpx.Request)
        assert request.method == "PATCH"
        assert str(request.url) == "http://api/files/f1"

    def test_parse_upload(self, api: DirectusAPI) -> None:
        file = api.parse_file_upload_response(
            response(200, {"data": {"id": "f1", "title": "Y"}})
        )
        assert file.id == "f1"
        assert file.title == "Y"

    def test_parse_upload_denied(self, api: DirectusAPI) -> None:
        with pytest.raises(ServerDeniedError):
            api.parse_file_upload_response(response(400, {"errors": [{"message": "bad"}]}))

    def test_download_response(self, api: DirectusAPI) -> None:
        assert api.parse_file_download_response(response(200, content=b"\x00\x01")) == b"\x00\x01"


class TestUrls:
    def test_convert_path_to_full_url(self, api: DirectusAPI) -> None:
        assert api.base_url == "http://api"
        assert api.convert_path_to_full_url("/items") == "http://api/items"
        assert api.convert_path_to_full_url("items") == "http://api/items"
