"""Exception hierarchy raised by the Directus client."""

from __future__ import annotations

import json
from typing import Any


class DirectusError(Exception):
    """Base class for every error raised by this package."""


class AuthenticationRequiredError(DirectusError):
    """No usable refresh token is available."""


class TransportError(DirectusError):
    """The request never produced an HTTP response (network, timeout, protocol)."""


class ParseError(DirectusError):
    """A success response whose body does not have the expected shape."""


class TypeMismatchError(DirectusError, TypeError):
    """A record field holds a value of an unexpected type."""

    def __init__(self, key: str, expected: str, value: Any) -> None:
        self.key = key
        self.expected = expected
        self.value = value
        super().__init__(
            f"Field {key!r} expected {expected}, got {type(value).__name__}"
        )


class MissingIdError(DirectusError, ValueError):
    """A record was built from data without an id."""


class ServerDeniedError(DirectusError):
    """The server answered with a non-success status."""

    def __init__(
        self,
        status_code: int | None,
        messages: list[str] | None = None,
        *,
        body: str | None = None,
        custom_message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.messages = messages or []
        self.body = body
        self.custom_message = custom_message
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.messages:
            return ", ".join(self.messages)
        if self.custom_message:
            return self.custom_message
        if self.status_code is not None:
            return f"Server denied this action. HTTP code: {self.status_code}."
        return "Server denied this action."

    @classmethod
    def from_body(
        cls,
        status_code: int,
        body: bytes | str,
        *,
        custom_message: str | None = None,
    ) -> ServerDeniedError:
        """Build from a Directus error envelope, tolerating non-JSON bodies."""
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        return cls(
            status_code,
            extract_error_messages(text),
            body=text,
            custom_message=custom_message,
        )


def extract_error_messages(body: bytes | str) -> list[str]:
    """Return the ``errors[].message`` strings of a Directus error envelope."""
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return []
    if not isinstance(payload, dict):
        return []
    errors = payload.get("errors")
    if not isinstance(errors, list):
        return []
    return [
        error["message"]
        for error in errors
        if isinstance(error, dict) and isinstance(error.get("message"), str)
    ]
