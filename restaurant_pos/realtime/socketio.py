"""Global Socket.IO server for waiter stations, the KDS and dashboards.

Client convention:
- URL base: ws://<host>:8000
- Socket.IO path: /socket.io/
- Auth: `auth.token` (JWT access token); `query.token` and an
  `Authorization: Bearer` header are accepted as fallbacks.

After connecting, clients opt into rooms with `subscribe:orders`,
`subscribe:tables`, `subscribe:kds` and `subscribe:table <tableId>` and leave
them with the matching `unsubscribe:*` events. Joining is idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

import socketio
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from django.conf import settings
from django.utils import timezone
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.exceptions import TokenError

from .rooms import KDS
from .rooms import ORDERS
from .rooms import TABLES
from .rooms import room_for_table

logger = logging.getLogger(__name__)


def _cors_allowed_origins() -> str | list[str]:
    origins = list(settings.REALTIME_CORS_ALLOWED_ORIGINS)
    return "*" if "*" in origins else origins


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=_cors_allowed_origins(),
    logger=False,
    engineio_logger=False,
)


@dataclass(frozen=True)
class UserRealtimeContext:
    user_id: int
    username: str


@database_sync_to_async
def _get_user_context_from_access_token(token: str) -> UserRealtimeContext:
    jwt_auth = JWTAuthentication()
    validated = jwt_auth.get_validated_token(token)
    user = jwt_auth.get_user(validated)
    return UserRealtimeContext(user_id=int(user.id), username=user.get_username())


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract the JWT from the Socket.IO handshake.

    Handles python-socketio environ shapes across ASGI/WSGI servers.
    """

    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    header = environ.get("HTTP_AUTHORIZATION", "") if isinstance(environ, dict) else ""
    if isinstance(header, str) and header.lower().startswith("bearer "):
        return header[len("bearer ") :].strip() or None

    return None


def _parse_table_id(data: Any) -> int | None:
    if isinstance(data, bool):
        return None
    if isinstance(data, int):
        return data
    if isinstance(data, str) and data.strip().isdigit():
        return int(data)
    if isinstance(data, dict):
        return _parse_table_id(data.get("tableId"))
    return None


async def _username(sid: str) -> str | None:
    session = await sio.get_session(sid)
    return session.get("username") if isinstance(session, dict) else None


async def _join(sid: str, room: str) -> None:
    await sio.enter_room(sid, room)
    logger.info("%s subscribed to %s", await _username(sid), room)
    await sio.emit("subscribed", {"room": room}, to=sid)


async def _leave(sid: str, room: str) -> None:
    await sio.leave_room(sid, room)
    logger.info("%s unsubscribed from %s", await _username(sid), room)
    await sio.emit("unsubscribed", {"room": room}, to=sid)


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    token = _extract_token(environ, auth)
    if not token:
        msg = "unauthorized"
        raise ConnectionRefusedError(msg)

    try:
        ctx = await _get_user_context_from_access_token(token)
    except TokenError as exc:
        message = str(exc)
        if "expired" in message.lower():
            msg = "jwt_expired"
            raise ConnectionRefusedError(msg) from exc
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except InvalidToken as exc:
        # simplejwt wraps TokenError; the reason survives in the detail.
        if "expired" in str(exc.detail).lower():
            msg = "jwt_expired"
            raise ConnectionRefusedError(msg) from exc
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except AuthenticationFailed as exc:  # user not found / inactive, etc.
        msg = "unauthorized"
        raise ConnectionRefusedError(msg) from exc
    except Exception as exc:
        logger.exception("Socket.IO connect error")
        msg = "server_error"
        raise ConnectionRefusedError(msg) from exc

    await sio.save_session(sid, {"user_id": ctx.user_id, "username": ctx.username})
    logger.info("Client connected: %s (user %s)", sid, ctx.username)
    await sio.emit(
        "connected",
        {"socketId": sid, "timestamp": timezone.now().isoformat()},
        to=sid,
    )


@sio.event
async def disconnect(sid: str, reason: Any = None):
    # Rooms/session are cleaned up automatically.
    logger.info("Client disconnected: %s (%s)", sid, reason)


@sio.on("subscribe:orders")
async def subscribe_orders(sid: str, data: Any = None):
    await _join(sid, ORDERS)


@sio.on("subscribe:tables")
async def subscribe_tables(sid: str, data: Any = None):
    await _join(sid, TABLES)


@sio.on("subscribe:kds")
async def subscribe_kds(sid: str, data: Any = None):
    await _join(sid, KDS)


@sio.on("subscribe:table")
async def subscribe_table(sid: str, data: Any = None):
    table_id = _parse_table_id(data)
    if table_id is None:
        logger.warning("Ignoring subscribe:table with invalid table id %r", data)
        return
    await _join(sid, room_for_table(table_id))


@sio.on("unsubscribe:orders")
async def unsubscribe_orders(sid: str, data: Any = None):
    await _leave(sid, ORDERS)


@sio.on("unsubscribe:tables")
async def unsubscribe_tables(sid: str, data: Any = None):
    await _leave(sid, TABLES)


@sio.on("unsubscribe:kds")
async def unsubscribe_kds(sid: str, data: Any = None):
    await _leave(sid, KDS)


@sio.on("unsubscribe:table")
async def unsubscribe_table(sid: str, data: Any = None):
    table_id = _parse_table_id(data)
    if table_id is None:
        logger.warning("Ignoring unsubscribe:table with invalid table id %r", data)
        return
    await _leave(sid, room_for_table(table_id))


@sio.on("ping")
async def ping(sid: str, data: Any = None):
    """Application-level liveness probe used by terminals."""

    await sio.emit("pong", {"timestamp": timezone.now().isoformat()}, to=sid)


def emit_event_to_rooms(rooms: list[str], event: str, payload: Any) -> None:
    """Emit to rooms from sync Django code.

    A client sitting in several of ``rooms`` receives the event once.
    """

    async_to_sync(sio.emit)(event, payload, room=rooms)


def broadcast_event(event: str, payload: Any) -> None:
    async_to_sync(sio.emit)(event, payload)
