"""Real-time item subscriptions over the Directus websocket endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from directus_sdk._awaitable import maybe_await
from directus_sdk.filters import Filter, SortProperty
from directus_sdk.models import CollectionMetadata, DirectusData

if TYPE_CHECKING:
    from directus_sdk.manager import DirectusApiManager

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], "None | Awaitable[None]"]


class WebSocketConnection(Protocol):
    """The few operations the dispatcher needs from a websocket."""

    async def send_str(self, data: str) -> None: ...

    async def receive(self) -> str | None:
        """Next text frame, or None once the socket is closed."""
        ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[WebSocketConnection]]


class _AiohttpConnection:
    def __init__(self, session: Any, ws: Any, msg_type: Any) -> None:
        self._session = session
        self._ws = ws
        self._msg_type = msg_type

    async def send_str(self, data: str) -> None:
        await self._ws.send_str(data)

    async def receive(self) -> str | None:
        while True:
            message = await self._ws.receive()
            if message.type == self._msg_type.TEXT:
                return message.data
            if message.type in (
                self._msg_type.CLOSE,
                self._msg_type.CLOSING,
                self._msg_type.CLOSED,
            ):
                return None
            if message.type == self._msg_type.ERROR:
                raise ConnectionError(f"Websocket error: {self._ws.exception()}")

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            await self._session.close()


async def aiohttp_connect(url: str) -> WebSocketConnection:
    """Open ``url`` with aiohttp (install the ``websocket`` extra)."""
    import aiohttp

    session = aiohttp.ClientSession()
    try:
        ws = await session.ws_connect(url, autoping=True)
    except BaseException:
        await session.close()
        raise
    return _AiohttpConnection(session, ws, aiohttp.WSMsgType)


@dataclass
class WebSocketSubscription:
    """One ``subscribe`` request and the callbacks for its events.

    ``init`` and ``create`` events both go to ``on_create``.
    """

    uid: str
    collection: str
    fields: list[str] | None = None
    filter: Filter | None = None
    sort: list[SortProperty] | None = None
    limit: int | None = None
    offset: int | None = None
    on_create: EventCallback | None = None
    on_update: EventCallback | None = None
    on_delete: EventCallback | None = None

    def __post_init__(self) -> None:
        if self.on_create is None and self.on_update is None and self.on_delete is None:
            raise ValueError("A subscription needs at least one of on_create, on_update, on_delete")

    @classmethod
    def for_model(
        cls,
        model: type[DirectusData],
        uid: str,
        *,
        metadata: CollectionMetadata | None = None,
        **kwargs: Any,
    ) -> WebSocketSubscription:
        meta = metadata or model.collection_metadata
        if meta is None:
            raise ValueError(f"{model.__name__} has no collection_metadata")
        kwargs.setdefault("fields", meta.default_fields.split(","))
        return cls(uid, meta.websocket_collection, **kwargs)

    def to_message(self) -> dict[str, Any]:
        query: dict[str, Any] = {"fields": self.fields or ["*"]}
        if self.filter is not None:
            query["filter"] = self.filter.as_dict()
        if self.sort:
            query["sort"] = [str(prop) for prop in self.sort]
        if self.limit is not None:
            query["limit"] = self.limit
        if self.offset is not None:
            query["offset"] = self.offset
        return {
            "type": "subscribe",
            "collection": self.collection,
            "uid": self.uid,
            "query": query,
        }


class DirectusWebSocket:
    """Routes subscription events from the server to their callbacks.

    Usage:
        ws = DirectusWebSocket(manager, [subscription])
        await ws.connect()
        await ws.run()  # until the server closes or disconnect() is called
    """

    def __init__(
        self,
        manager: DirectusApiManager,
        subscriptions: list[WebSocketSubscription] | None = None,
        *,
        connect: Connector | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_done: Callable[[], None] | None = None,
    ) -> None:
        self._manager = manager
        self._subscriptions: list[WebSocketSubscription] = list(subscriptions or [])
        self._connect = connect or aiohttp_connect
        self._on_error = on_error
        self._on_done = on_done
        self._connection: WebSocketConnection | None = None

    @property
    def subscriptions(self) -> list[WebSocketSubscription]:
        return list(self._subscriptions)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def __aenter__(self) -> DirectusWebSocket:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """Open the socket, then authenticate or subscribe straight away."""
        self._connection = await self._connect(self._manager.websocket_base_url)
        access_token = self._manager.access_token
        if access_token is not None:
            await self._send({"type": "auth", "access_token": access_token})
        else:
            await self.subscribe()

    async def run(self) -> None:
        """Consume messages until the socket closes."""
        connection = self._require_connection()
        try:
            while (text := await connection.receive()) is not None:
                await self.handle_message(text)
        except Exception as e:
            self._report_error(e)
        finally:
            await self.disconnect()

    async def handle_message(self, text: str) -> None:
        try:
            message = json.loads(text)
        except ValueError:
            logger.warning("Ignoring non-JSON websocket message")
            return
        if not isinstance(message, dict):
            return

        message_type = message.get("type")
        if message_type == "ping":
            await self._send({"type": "pong"})
        elif message_type == "auth":
            await self._handle_auth(message)
        elif message_type == "subscription":
            await self._handle_subscription(message)

    async def _handle_auth(self, message: dict[str, Any]) -> None:
        status = message.get("status")
        if status == "error":
            error = message.get("error")
            code = error.get("code") if isinstance(error, dict) else None
            if code == "TOKEN_EXPIRED":
                refresh_token = self._manager.refresh_token
                if refresh_token is not None:
                    await self._send({"type": "auth", "refresh_token": refresh_token})
            else:
                logger.warning("Websocket authentication failed: %s", code)
        elif status == "ok":
            refresh_token = message.get("refresh_token")
            if isinstance(refresh_token, str):
                self._manager.refresh_token = refresh_token
            else:
                await self.subscribe()

    async def _handle_subscription(self, message: dict[str, Any]) -> None:
        uid = message.get("uid")
        event = message.get("event")
        subscription = next((s for s in self._subscriptions if s.uid == uid), None)
        if subscription is None:
            logger.warning("No subscription found for uid %s", uid)
            return

        if event in ("init", "create"):
            callback = subscription.on_create
        elif event == "update":
            callback = subscription.on_update
        elif event == "delete":
            callback = subscription.on_delete
        elif event == "unsubscribe":
            self._subscriptions = [s for s in self._subscriptions if s.uid != uid]
            return
        else:
            return
        if callback is not None:
            await maybe_await(callback(message))

    async def subscribe(self) -> None:
        for subscription in self._subscriptions:
            await self._send(subscription.to_message())

    async def add_subscription(self, subscription: WebSocketSubscription) -> None:
        self._subscriptions.append(subscription)
        if self._connection is not None:
            await self._send(subscription.to_message())

    async def remove_subscription(self, uid: str) -> None:
        """Ask the server to stop; the subscription is dropped on its confirmation."""
        await self._send({"type": "unsubscribe", "uid": uid})

    async def disconnect(self) -> None:
        """Close the socket and report completion; a no-op once closed."""
        connection, self._connection = self._connection, None
        if connection is None:
            return
        await connection.close()
        if self._on_done is not None:
            self._on_done()

    async def _send(self, message: dict[str, Any]) -> None:
        connection = self._require_connection()
        try:
            await connection.send_str(json.dumps(message, separators=(",", ":")))
        except Exception as e:
            self._report_error(e)

    def _require_connection(self) -> WebSocketConnection:
        if self._connection is None:
            raise RuntimeError("Websocket is not connected; call connect() first")
        return self._connection

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            raise error
        self._on_error(error)
