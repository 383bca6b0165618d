from __future__ import annotations

import logging
from typing import Any

from restaurant_pos.realtime.rooms import ORDERS
from restaurant_pos.realtime.rooms import room_for_table
from restaurant_pos.realtime.socketio import emit_event_to_rooms

logger = logging.getLogger(__name__)


def publish_payment_completed(payment: dict[str, Any]) -> None:
    """Notify the floor that a payment went through.

    Clients do not cache payments; this only drives notifications.
    """

    rooms = [ORDERS]
    order = payment.get("order")
    table_id = order.get("tableId") if isinstance(order, dict) else None
    if table_id is not None:
        rooms.append(room_for_table(table_id))
    emit_event_to_rooms(rooms, "payment:completed", payment)
    logger.info("Emitted payment:completed for payment %s", payment["id"])
