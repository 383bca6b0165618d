from __future__ import annotations

import logging
from typing import Any

from restaurant_pos.realtime.rooms import TABLES
from restaurant_pos.realtime.rooms import room_for_table
from restaurant_pos.realtime.socketio import emit_event_to_rooms

logger = logging.getLogger(__name__)


def publish_table_updated(table: dict[str, Any]) -> None:
    """Publish a table's new state (status, occupancy) to the floor plan."""

    emit_event_to_rooms([TABLES, room_for_table(table["id"])], "table:updated", table)
    logger.info("Emitted table:updated for table %s", table["id"])
