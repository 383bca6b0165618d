"""Structural checks for entities pushed by the server.

Entity shapes belong to the REST layer, so only what the caches key on is
checked here: an ``id`` on every entity and a known ``status`` on orders.
Anything that fails is rejected before it reaches a cache.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from django.db import models

Entity = dict[str, Any]
EntityId = int | str


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PREPARING = "PREPARING", "Preparing"
    READY = "READY", "Ready"
    SERVED = "SERVED", "Served"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"


KITCHEN_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY},
)


class MalformedPayloadError(ValueError):
    """An inbound event payload cannot be applied to a cache."""


def _valid_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and bool(value.strip())


def parse_order_status(value: Any) -> OrderStatus | None:
    if not isinstance(value, str):
        return None
    try:
        return OrderStatus(value.strip().upper())
    except ValueError:
        return None


def order_status(entity: Mapping[str, Any]) -> OrderStatus | None:
    return parse_order_status(entity.get("status"))


def validate_entity(payload: Any) -> Entity:
    if not isinstance(payload, Mapping):
        msg = f"expected an object, got {type(payload).__name__}"
        raise MalformedPayloadError(msg)
    if not _valid_id(payload.get("id")):
        msg = "entity has no usable 'id'"
        raise MalformedPayloadError(msg)
    return dict(payload)


def validate_order(payload: Any) -> Entity:
    entity = validate_entity(payload)
    if order_status(entity) is None:
        msg = f"order {entity['id']!r} has invalid status {entity.get('status')!r}"
        raise MalformedPayloadError(msg)
    return entity


def validate_cancellation(payload: Any) -> tuple[EntityId, int | None]:
    """Return ``(order_id, table_id)`` from an ``order:cancelled`` payload.

    Older servers sent the bare order id instead of ``{orderId, tableId}``.
    """

    if _valid_id(payload):
        return payload, None
    if not isinstance(payload, Mapping):
        msg = f"expected an object, got {type(payload).__name__}"
        raise MalformedPayloadError(msg)
    order_id = payload.get("orderId")
    if not _valid_id(order_id):
        msg = "cancellation has no usable 'orderId'"
        raise MalformedPayloadError(msg)
    table_id = payload.get("tableId")
    return order_id, table_id if isinstance(table_id, int) else None
