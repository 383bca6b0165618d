from unittest import mock

import pytest
from asgiref.sync import async_to_sync
from django.contrib.auth import get_user_model
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.tokens import AccessToken

from restaurant_pos.realtime import socketio as realtime

User = get_user_model()


@pytest.fixture
def sio_calls():
    with (
        mock.patch.object(realtime.sio, "enter_room", new=mock.AsyncMock()) as enter,
        mock.patch.object(realtime.sio, "leave_room", new=mock.AsyncMock()) as leave,
        mock.patch.object(realtime.sio, "emit", new=mock.AsyncMock()) as emit,
        mock.patch.object(realtime.sio, "save_session", new=mock.AsyncMock()) as save,
        mock.patch.object(
            realtime.sio,
            "get_session",
            new=mock.AsyncMock(return_value={"username": "waiter"}),
        ),
    ):
        yield mock.Mock(enter=enter, leave=leave, emit=emit, save=save)


class TestExtractToken:
    def test_auth_payload_wins(self):
        environ = {"QUERY_STRING": "token=from-query"}
        assert realtime._extract_token(environ, {"token": "from-auth"}) == "from-auth"  # noqa: SLF001

    def test_asgi_scope_query_string(self):
        environ = {"asgi.scope": {"query_string": b"EIO=4&token=abc"}}
        assert realtime._extract_token(environ, None) == "abc"  # noqa: SLF001

    def test_wsgi_query_string(self):
        environ = {"QUERY_STRING": "token=xyz&transport=websocket"}
        assert realtime._extract_token(environ, None) == "xyz"  # noqa: SLF001

    def test_bearer_header(self):
        environ = {"HTTP_AUTHORIZATION": "Bearer hdr-token"}
        assert realtime._extract_token(environ, None) == "hdr-token"  # noqa: SLF001

    def test_missing(self):
        assert realtime._extract_token({}, {"token": ""}) is None  # noqa: SLF001


class TestConnect:
    def test_refuses_without_token(self, sio_calls):
        with pytest.raises(ConnectionRefusedError, match="unauthorized"):
            async_to_sync(realtime.connect)("sid1", {}, None)
        sio_calls.save.assert_not_awaited()

    def test_refuses_invalid_token(self, sio_calls):
        error = InvalidToken({"detail": "Token is invalid", "messages": []})
        with (
            mock.patch.object(
                realtime,
                "_get_user_context_from_access_token",
                new=mock.AsyncMock(side_effect=error),
            ),
            pytest.raises(ConnectionRefusedError, match="unauthorized"),
        ):
            async_to_sync(realtime.connect)("sid1", {}, {"token": "garbage"})

    def test_reports_expired_token(self, sio_calls):
        error = InvalidToken(
            {"detail": "Given token not valid", "messages": [{"message": "Token is expired"}]},
        )
        with (
            mock.patch.object(
                realtime,
                "_get_user_context_from_access_token",
                new=mock.AsyncMock(side_effect=error),
            ),
            pytest.raises(ConnectionRefusedError, match="jwt_expired"),
        ):
            async_to_sync(realtime.connect)("sid1", {}, {"token": "old"})

    def test_unexpected_failure_is_server_error(self, sio_calls):
        with (
            mock.patch.object(
                realtime,
                "_get_user_context_from_access_token",
                new=mock.AsyncMock(side_effect=RuntimeError("db gone")),
            ),
            pytest.raises(ConnectionRefusedError, match="server_error"),
        ):
            async_to_sync(realtime.connect)("sid1", {}, {"token": "tok"})

    @pytest.mark.django_db(transaction=True)
    def test_accepts_valid_token(self, sio_calls):
        user = User.objects.create_user(username="waiter", password="password")  # noqa: S106
        token = str(AccessToken.for_user(user))

        async_to_sync(realtime.connect)("sid1", {}, {"token": token})

        sio_calls.save.assert_awaited_once_with(
            "sid1",
            {"user_id": user.id, "username": "waiter"},
        )
        event, payload = sio_calls.emit.await_args.args
        assert event == "connected"
        assert payload["socketId"] == "sid1"
        assert sio_calls.emit.await_args.kwargs == {"to": "sid1"}


class TestRooms:
    @pytest.mark.parametrize(
        ("handler", "room"),
        [
            (realtime.subscribe_orders, "orders"),
            (realtime.subscribe_tables, "tables"),
            (realtime.subscribe_kds, "kds"),
        ],
    )
    def test_subscribe_joins_room_and_acknowledges(self, sio_calls, handler, room):
        async_to_sync(handler)("sid1")

        sio_calls.enter.assert_awaited_once_with("sid1", room)
        sio_calls.emit.assert_awaited_once_with("subscribed", {"room": room}, to="sid1")

    @pytest.mark.parametrize("data", [7, "7", {"tableId": 7}])
    def test_subscribe_table(self, sio_calls, data):
        async_to_sync(realtime.subscribe_table)("sid1", data)

        sio_calls.enter.assert_awaited_once_with("sid1", "table:7")

    @pytest.mark.parametrize("data", [None, "seven", True, {"tableId": None}])
    def test_subscribe_table_ignores_bad_ids(self, sio_calls, data):
        async_to_sync(realtime.subscribe_table)("sid1", data)

        sio_calls.enter.assert_not_awaited()
        sio_calls.emit.assert_not_awaited()

    def test_unsubscribe_leaves_room(self, sio_calls):
        async_to_sync(realtime.unsubscribe_kds)("sid1")
        async_to_sync(realtime.unsubscribe_table)("sid1", 3)

        assert sio_calls.leave.await_args_list == [
            mock.call("sid1", "kds"),
            mock.call("sid1", "table:3"),
        ]
        sio_calls.emit.assert_any_await("unsubscribed", {"room": "table:3"}, to="sid1")


def test_ping_answers_with_pong(sio_calls):
    async_to_sync(realtime.ping)("sid1")

    event, payload = sio_calls.emit.await_args.args
    assert event == "pong"
    assert "timestamp" in payload
    assert sio_calls.emit.await_args.kwargs == {"to": "sid1"}


def test_emit_to_rooms_uses_one_emit(sio_calls):
    realtime.emit_event_to_rooms(["orders", "kds"], "order:created", {"id": "o1"})

    sio_calls.emit.assert_awaited_once_with(
        "order:created",
        {"id": "o1"},
        room=["orders", "kds"],
    )
