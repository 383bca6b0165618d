from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from restaurant_pos.realtime.rooms import Room

from .status import ConnectionStatus

if TYPE_CHECKING:  # import for type checking only
    from .connection import ConnectionManager

logger = logging.getLogger(__name__)


class RoomSubscriptionRegistry:
    """The set of rooms this client wants to be in.

    Membership is a declaration of interest and outlives the connection:
    screens subscribe when they mount and unsubscribe when they unmount, and
    every time the manager reports ``CONNECTED`` the whole desired set is
    sent again. The server treats joins as idempotent.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self._rooms: dict[str, Room] = {}
        self._unsubscribe_status = manager.on_status_change(self._on_status)

    @property
    def rooms(self) -> frozenset[str]:
        return frozenset(self._rooms)

    def is_subscribed(self, room: str) -> bool:
        try:
            return Room.parse(room).name in self._rooms
        except ValueError:
            return False

    def subscribe(self, room: str) -> bool:
        parsed = self._parse(room)
        if parsed is None or parsed.name in self._rooms:
            return False
        self._rooms[parsed.name] = parsed
        self._send(parsed, "subscribe")
        return True

    def unsubscribe(self, room: str) -> bool:
        parsed = self._parse(room)
        if parsed is None or self._rooms.pop(parsed.name, None) is None:
            return False
        self._send(parsed, "unsubscribe")
        return True

    def replay(self) -> int:
        sent = 0
        for room in list(self._rooms.values()):
            if self._send(room, "subscribe"):
                sent += 1
        if sent:
            logger.info("Replayed %s room subscription(s)", sent)
        return sent

    def close(self) -> None:
        self._unsubscribe_status()

    def _on_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            self.replay()

    def _send(self, room: Room, action: str) -> bool:
        event, payload = room.message(action)
        sent = self._manager.emit(event, payload)
        if sent:
            logger.debug("Sent %s for room %s", event, room.name)
        return sent

    @staticmethod
    def _parse(room: str) -> Room | None:
        try:
            return Room.parse(room)
        except ValueError:
            logger.warning("Ignoring subscription to invalid room %r", room)
            return None
