"""Owns the client's single Socket.IO channel and its reconnection policy.

The manager is the only object that touches the transport. Everything else
observes it through ``on_status_change`` or goes through ``emit``.

Reconnection is client-driven: on an unexpected drop or a failed handshake an
attempt is scheduled after ``ReconnectPolicy.delay_for(n)`` seconds. Only one
timer may be pending at a time and after ``max_attempts`` consecutive
failures the manager parks in ``ERROR`` until ``connect`` is called again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any

from .conf import ClientSettings
from .conf import ReconnectPolicy
from .dispatcher import EventDispatcher
from .status import Cancellable
from .status import ConnectionStatus
from .status import ReconnectState
from .transport import CLIENT_DISCONNECT_REASONS
from .transport import SocketIOTransport
from .transport import Transport
from .transport import TransportError

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], None]
Scheduler = Callable[[float, Callable[[], Awaitable[None]]], Cancellable]

AUTH_ERROR_REASONS = frozenset({"unauthorized", "jwt_expired"})


def is_auth_error(reason: str) -> bool:
    lowered = reason.lower()
    return (
        lowered in AUTH_ERROR_REASONS
        or "authentication" in lowered
        or "token" in lowered
    )


def _log_timer_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Reconnect timer failed", exc_info=exc)


def sleep_then(delay: float, callback: Callable[[], Awaitable[None]]) -> Cancellable:
    async def _run() -> None:
        await asyncio.sleep(delay)
        await callback()

    task = asyncio.ensure_future(_run())
    task.add_done_callback(_log_timer_failure)
    return task


class Connection:
    """A live transport together with the dispatcher fed by it."""

    def __init__(self, transport: Transport, dispatcher: EventDispatcher) -> None:
        self.transport = transport
        self.dispatcher = dispatcher

    @property
    def connected(self) -> bool:
        return self.transport.connected

    @property
    def sid(self) -> str | None:
        return self.transport.sid


class ConnectionManager:
    def __init__(
        self,
        transport_factory: Callable[[], Transport] | None = None,
        *,
        settings: ClientSettings | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self._transport_factory = transport_factory or (
            lambda: SocketIOTransport(self.settings)
        )
        self._scheduler = scheduler or sleep_then
        self._status = ConnectionStatus.DISCONNECTED
        self._listeners: list[StatusListener] = []
        self._connection: Connection | None = None
        self._token: str | None = None
        self._ping_waiter: asyncio.Future | None = None
        self._opening: asyncio.Task | None = None
        self.reconnect_state = ReconnectState()

    @property
    def policy(self) -> ReconnectPolicy:
        return self.settings.reconnect

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.connected

    def on_status_change(self, callback: StatusListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def connect(self, auth_token: str | None = None) -> Connection:
        """Open the channel, or return the one already open or opening."""

        if self._connection is not None and self._connection.connected:
            return self._connection

        self.reconnect_state.manual_disconnect = False
        self.reconnect_state.reset()
        self._token = auth_token

        if self._opening is not None and not self._opening.done():
            # Join the handshake already in flight instead of opening twice.
            connection = self._connection
            await asyncio.shield(self._opening)
            return connection

        if self._connection is None:
            self._connection = self._new_connection()
        connection = self._connection

        logger.info("Connecting to realtime server %s", self.settings.server_url)
        self._set_status(ConnectionStatus.CONNECTING)
        await self._open()
        return connection

    def disconnect(self) -> None:
        """Close the channel and suppress automatic reconnection."""

        self.reconnect_state.manual_disconnect = True
        self.reconnect_state.reset()
        self._resolve_ping(alive=False)
        self._opening = None

        connection, self._connection = self._connection, None
        if connection is not None:
            connection.dispatcher.clear()
            connection.transport.close()

        logger.info("Disconnected from realtime server")
        self._set_status(ConnectionStatus.DISCONNECTED)

    def emit(self, event: str, data: Any = None) -> bool:
        if not self.is_connected:
            return False
        self._connection.transport.send(event, data)
        return True

    async def ping(self) -> bool:
        """Probe liveness; ``False`` after ``ping_timeout`` without a pong."""

        if not self.is_connected:
            return False

        waiter = self._ping_waiter
        if waiter is None or waiter.done():
            waiter = asyncio.get_running_loop().create_future()
            self._ping_waiter = waiter
            self._connection.transport.send("ping")

        try:
            return await asyncio.wait_for(
                asyncio.shield(waiter),
                timeout=self.settings.ping_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "No pong within %.1fs from realtime server",
                self.settings.ping_timeout,
            )
            return False
        finally:
            if self._ping_waiter is waiter:
                self._ping_waiter = None

    def _new_connection(self) -> Connection:
        transport = self._transport_factory()
        connection = Connection(transport, EventDispatcher())
        transport.set_handlers(
            on_message=lambda event, data: self._handle_message(
                connection,
                event,
                data,
            ),
            on_disconnect=lambda reason: self._handle_disconnect(connection, reason),
        )
        return connection

    async def _open(self) -> bool:
        if self._opening is None or self._opening.done():
            connection = self._connection
            if connection is None:
                return False
            self._opening = asyncio.ensure_future(self._handshake(connection))
        return await asyncio.shield(self._opening)

    async def _handshake(self, connection: Connection) -> bool:
        try:
            await connection.transport.open(self._token)
        except TransportError as exc:
            reason = exc.reason
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error opening the realtime transport")
            reason = str(exc) or type(exc).__name__
        else:
            reason = None

        if connection is not self._connection:
            # disconnect() ran while the handshake was in flight
            if reason is None:
                connection.transport.close()
            return False

        if reason is not None:
            self._handle_connect_error(reason)
            return False

        self.reconnect_state.reset()
        logger.info("Realtime connection established (sid=%s)", connection.sid)
        self._set_status(ConnectionStatus.CONNECTED)
        return True

    def _handle_connect_error(self, reason: str) -> None:
        logger.warning("Realtime connection error: %s", reason)
        if is_auth_error(reason):
            # A new token is needed; retrying with this one cannot succeed.
            logger.warning("Realtime authentication rejected, not retrying")
            self.reconnect_state.cancel_timer()
            self.reconnect_state.attempt_count = self.policy.max_attempts
            self._set_status(ConnectionStatus.ERROR)
            return
        self._set_status(ConnectionStatus.ERROR)
        self._schedule_reconnect()

    def _handle_disconnect(self, connection: Connection, reason: str) -> None:
        if connection is not self._connection:
            return

        logger.info("Realtime connection lost: %s", reason)
        self._resolve_ping(alive=False)
        self._set_status(ConnectionStatus.DISCONNECTED)

        if self.reconnect_state.manual_disconnect:
            return
        if reason in CLIENT_DISCONNECT_REASONS:
            return
        self._schedule_reconnect()

    def _handle_message(self, connection: Connection, event: str, data: Any) -> None:
        if connection is not self._connection:
            return
        if event == "pong":
            self._resolve_ping(alive=True)
        connection.dispatcher.dispatch(event, data)

    def _schedule_reconnect(self) -> None:
        state = self.reconnect_state
        if state.manual_disconnect:
            return
        if state.timer is not None:
            return

        if state.attempt_count >= self.policy.max_attempts:
            logger.error(
                "Max reconnection attempts (%s) reached",
                self.policy.max_attempts,
            )
            self._set_status(ConnectionStatus.ERROR)
            return

        state.attempt_count += 1
        delay = self.policy.delay_for(state.attempt_count)
        logger.info(
            "Scheduling reconnection attempt %s/%s in %.1fs",
            state.attempt_count,
            self.policy.max_attempts,
            delay,
        )
        self._set_status(ConnectionStatus.RECONNECTING)
        state.timer = self._scheduler(delay, self._reconnect)

    async def _reconnect(self) -> None:
        state = self.reconnect_state
        state.timer = None
        if state.manual_disconnect or self.is_connected:
            return
        logger.info(
            "Attempting reconnection (%s/%s)",
            state.attempt_count,
            self.policy.max_attempts,
        )
        await self._open()

    def _resolve_ping(self, *, alive: bool) -> None:
        waiter, self._ping_waiter = self._ping_waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(alive)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener %r failed", listener)
