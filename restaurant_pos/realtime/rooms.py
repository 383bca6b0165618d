"""Room names shared by the Socket.IO server and the sync client."""

from __future__ import annotations

from dataclasses import dataclass

ORDERS = "orders"
TABLES = "tables"
KDS = "kds"
TOPIC_ROOMS = frozenset({ORDERS, TABLES, KDS})
TABLE_ROOM_PREFIX = "table:"


def room_for_table(table_id: int) -> str:
    return f"{TABLE_ROOM_PREFIX}{int(table_id)}"


@dataclass(frozen=True)
class Room:
    """A parsed room name and the wire message that joins or leaves it."""

    name: str
    topic: str
    table_id: int | None = None

    @classmethod
    def parse(cls, name: str) -> Room:
        if not isinstance(name, str):
            msg = f"room name must be a string, got {type(name).__name__}"
            raise ValueError(msg)  # noqa: TRY004
        if name in TOPIC_ROOMS:
            return cls(name=name, topic=name)
        if name.startswith(TABLE_ROOM_PREFIX):
            raw_id = name[len(TABLE_ROOM_PREFIX) :]
            try:
                table_id = int(raw_id)
            except ValueError:
                msg = f"invalid table room: {name!r}"
                raise ValueError(msg) from None
            return cls(name=room_for_table(table_id), topic="table", table_id=table_id)
        msg = f"unknown room: {name!r}"
        raise ValueError(msg)

    def message(self, action: str) -> tuple[str, int | None]:
        """Return ``(event, payload)``, e.g. ``("subscribe:table", 4)``."""

        return f"{action}:{self.topic}", self.table_id
