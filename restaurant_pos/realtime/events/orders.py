from __future__ import annotations

import logging
from typing import Any

from restaurant_pos.realtime.rooms import KDS
from restaurant_pos.realtime.rooms import ORDERS
from restaurant_pos.realtime.rooms import room_for_table
from restaurant_pos.realtime.socketio import emit_event_to_rooms

logger = logging.getLogger(__name__)


def rooms_for_order(table_id: Any) -> list[str]:
    rooms = [ORDERS, KDS]
    if table_id is not None:
        rooms.append(room_for_table(table_id))
    return rooms


def publish_order_created(order: dict[str, Any]) -> None:
    """Publish a newly placed order to the floor, the kitchen and its table."""

    emit_event_to_rooms(rooms_for_order(order.get("tableId")), "order:created", order)
    logger.info("Emitted order:created for order %s", order["id"])


def publish_order_updated(order: dict[str, Any]) -> None:
    emit_event_to_rooms(rooms_for_order(order.get("tableId")), "order:updated", order)
    logger.info("Emitted order:updated for order %s", order["id"])


def publish_order_cancelled(order_id: str, table_id: int | None) -> None:
    payload = {"orderId": order_id, "tableId": table_id}
    emit_event_to_rooms(rooms_for_order(table_id), "order:cancelled", payload)
    logger.info("Emitted order:cancelled for order %s", order_id)
