"""Transport seam between the ConnectionManager and python-socketio."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any
from typing import Protocol

import socketio

from .conf import ClientSettings

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, Any], None]
DisconnectHandler = Callable[[str], None]

# Reasons reported when this side closed the channel on purpose.
CLIENT_DISCONNECT_REASONS = frozenset({"io client disconnect", "client disconnect"})


class TransportError(Exception):
    """The transport could not be opened."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class Transport(Protocol):
    @property
    def connected(self) -> bool: ...

    @property
    def sid(self) -> str | None: ...

    def set_handlers(
        self,
        on_message: MessageHandler,
        on_disconnect: DisconnectHandler,
    ) -> None: ...

    async def open(self, token: str | None) -> None: ...

    def send(self, event: str, data: Any = None) -> None: ...

    def close(self) -> None: ...


class SocketIOTransport:
    """A python-socketio ``AsyncClient`` with its own reconnection disabled.

    Reconnection is driven by the ConnectionManager so backoff, jitter and
    the attempt cap are under our control.
    """

    def __init__(self, settings: ClientSettings | None = None) -> None:
        self.settings = settings or ClientSettings()
        self._sio = socketio.AsyncClient(
            reconnection=False,
            logger=False,
            engineio_logger=False,
        )
        self._on_message: MessageHandler | None = None
        self._on_disconnect: DisconnectHandler | None = None
        self._last_error: str | None = None
        self._pending: set[asyncio.Future] = set()

        self._sio.on("connect_error", self._handle_connect_error)
        self._sio.on("disconnect", self._handle_disconnect)
        self._sio.on("*", self._handle_any)

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    @property
    def sid(self) -> str | None:
        return self._sio.sid

    def set_handlers(
        self,
        on_message: MessageHandler,
        on_disconnect: DisconnectHandler,
    ) -> None:
        self._on_message = on_message
        self._on_disconnect = on_disconnect

    async def open(self, token: str | None) -> None:
        self._last_error = None
        try:
            await self._sio.connect(
                self.settings.server_url,
                auth={"token": token},
                transports=["websocket", "polling"],
                socketio_path=self.settings.socketio_path,
                wait_timeout=self.settings.connect_timeout,
            )
        except socketio.exceptions.ConnectionError as exc:
            reason = self._last_error or str(exc) or "connection error"
            raise TransportError(reason) from exc

    def send(self, event: str, data: Any = None) -> None:
        if data is None:
            self._track(self._sio.emit(event))
        else:
            self._track(self._sio.emit(event, data))

    def close(self) -> None:
        self._track(self._sio.disconnect())

    def _track(self, coro) -> None:
        future = asyncio.ensure_future(coro)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def _handle_connect_error(self, data: Any = None) -> None:
        # Server-side refusals arrive as {"message": "..."} or a bare string.
        if isinstance(data, dict):
            self._last_error = str(data.get("message") or data)
        elif data is not None:
            self._last_error = str(data)

    async def _handle_disconnect(self, reason: Any = None) -> None:
        if self._on_disconnect is not None:
            self._on_disconnect(str(reason) if reason else "transport close")

    async def _handle_any(self, event: str, *args: Any) -> None:
        if self._on_message is not None:
            self._on_message(event, args[0] if args else None)
