"""Bearer token state: access token, refresh token and expiry."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from directus_sdk._awaitable import maybe_await

RefreshTokenLoader = Callable[[], "str | None | Awaitable[str | None]"]
RefreshTokenSaver = Callable[[str], "None | Awaitable[None]"]


class TokenState:
    """Tokens held for one API facade.

    Only login, refresh and logout mutate this object. The loader and saver may be
    plain functions or coroutine functions.
    """

    def __init__(
        self,
        *,
        load_refresh_token: RefreshTokenLoader | None = None,
        save_refresh_token: RefreshTokenSaver | None = None,
    ) -> None:
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.access_token_expiry: float | None = None  # Unix timestamp seconds
        self._load_refresh_token = load_refresh_token
        self._save_refresh_token = save_refresh_token
        self._loader_consulted = False

    @property
    def can_load_refresh_token(self) -> bool:
        return self._load_refresh_token is not None and not self._loader_consulted

    @property
    def has_tokens(self) -> bool:
        return self.access_token is not None and self.refresh_token is not None

    def should_refresh(self, now: float | None = None) -> bool:
        """True if a refresh token is held or loadable and the access token is
        missing or past its expiry. An access token with unknown expiry is kept."""
        if self.refresh_token is None and not self.can_load_refresh_token:
            return False
        if self.access_token is None:
            return True
        if self.access_token_expiry is None:
            return False
        current = time.time() if now is None else now
        return self.access_token_expiry < current

    async def ensure_refresh_token(self) -> str | None:
        """Hydrate the refresh token from the loader when none is held.

        The loaded value is kept even when empty so that request preparation
        rejects it instead of silently sending a blank token. The loader runs at
        most once until the tokens are next replaced or cleared, even when it
        finds nothing.
        """
        loader = self._load_refresh_token
        if self.refresh_token is None and loader is not None and not self._loader_consulted:
            self._loader_consulted = True
            self.refresh_token = await maybe_await(loader())
        return self.refresh_token

    async def apply(
        self,
        access_token: str | None,
        refresh_token: str | None,
        expires_ms: int | None,
    ) -> None:
        """Replace all token fields from a login or refresh response."""
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._loader_consulted = False
        if expires_ms is not None:
            self.access_token_expiry = time.time() + expires_ms / 1000
        else:
            self.access_token_expiry = None
        if refresh_token is not None and self._save_refresh_token is not None:
            await maybe_await(self._save_refresh_token(refresh_token))

    def clear(self) -> None:
        """Forget every token, as after a logout."""
        self.access_token = None
        self.refresh_token = None
        self.access_token_expiry = None
        self._loader_consulted = False

    def authorization_header(self) -> dict[str, str]:
        if self.access_token is None:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def __repr__(self) -> str:
        return (
            f"TokenState(access_token={'set' if self.access_token else None}, "
            f"refresh_token={'set' if self.refresh_token else None}, "
            f"access_token_expiry={self.access_token_expiry})"
        )
