"""Per-domain caches that fold server events into local collections.

Every collection is ordered most-recent-first and holds at most one entry
per id. The rules are the same for all domains and differ only in the
inclusion predicate:

- created: ignored when excluded; an existing id is treated as an update;
  otherwise the entity is prepended.
- updated: an excluded entity is evicted; an included one replaces the
  existing entry in place, or is prepended when it was never seen.
- removed: the id is dropped if present.

Events can be duplicated or arrive out of order around reconnects, so every
operation is idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Iterable
from typing import Any

from .payloads import KITCHEN_STATUSES
from .payloads import Entity
from .payloads import EntityId
from .payloads import MalformedPayloadError
from .payloads import OrderStatus
from .payloads import order_status
from .payloads import validate_cancellation
from .payloads import validate_entity
from .payloads import validate_order
from .signals import order_changed

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
REMOVED = "removed"
SEEDED = "seeded"
INVALIDATED = "invalidated"

Observer = Callable[[str, EntityId | None], None]


class CacheReconciler:
    domain = "entities"

    def __init__(self) -> None:
        self._items: list[Entity] = []
        self._observers: list[Observer] = []

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return self._index_of(entity_id) is not None

    @property
    def items(self) -> list[Entity]:
        return list(self._items)

    def ids(self) -> list[EntityId]:
        return [item["id"] for item in self._items]

    def get(self, entity_id: EntityId) -> Entity | None:
        index = self._index_of(entity_id)
        return None if index is None else self._items[index]

    def includes(self, entity: Entity) -> bool:
        return True

    def validate(self, payload: Any) -> Entity:
        return validate_entity(payload)

    def observe(self, callback: Observer) -> Callable[[], None]:
        if callback not in self._observers:
            self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def seed(self, entities: Iterable[Any]) -> None:
        """Replace the collection with a freshly fetched snapshot."""

        items: list[Entity] = []
        seen: set[EntityId] = set()
        for payload in entities:
            try:
                entity = self.validate(payload)
            except MalformedPayloadError as exc:
                logger.warning("Dropping malformed %s row from seed: %s", self.domain, exc)
                continue
            if entity["id"] in seen or not self.includes(entity):
                continue
            seen.add(entity["id"])
            items.append(entity)
        self._items = items
        self._notify(SEEDED, None)

    def apply_created(self, entity: Entity) -> bool:
        if not self.includes(entity):
            return False
        if self._index_of(entity["id"]) is not None:
            return self._apply_update(entity)
        self._items.insert(0, entity)
        self._notify(CREATED, entity["id"])
        return True

    def apply_updated(self, entity: Entity) -> bool:
        return self._apply_update(entity)

    def _apply_update(self, entity: Entity) -> bool:
        index = self._index_of(entity["id"])
        if not self.includes(entity):
            if index is None:
                return False
            del self._items[index]
            self._notify(REMOVED, entity["id"])
            return True
        if index is None:
            self._items.insert(0, entity)
            self._notify(CREATED, entity["id"])
        else:
            self._items[index] = entity
            self._notify(UPDATED, entity["id"])
        return True

    def apply_removed(self, entity_id: EntityId) -> bool:
        index = self._index_of(entity_id)
        if index is None:
            return False
        del self._items[index]
        self._notify(REMOVED, entity_id)
        return True

    # Dispatch boundary: raw payloads come in here and are validated first.

    def handle_created(self, payload: Any) -> None:
        entity = self._accept(payload, CREATED)
        if entity is not None:
            self.apply_created(entity)

    def handle_updated(self, payload: Any) -> None:
        entity = self._accept(payload, UPDATED)
        if entity is not None:
            self.apply_updated(entity)

    def _accept(self, payload: Any, change: str) -> Entity | None:
        try:
            return self.validate(payload)
        except MalformedPayloadError as exc:
            logger.warning("Dropping malformed %s %s event: %s", self.domain, change, exc)
            return None

    def _index_of(self, entity_id: object) -> int | None:
        for index, item in enumerate(self._items):
            if item["id"] == entity_id:
                return index
        return None

    def _notify(self, change: str, entity_id: EntityId | None) -> None:
        for callback in list(self._observers):
            try:
                callback(change, entity_id)
            except Exception:
                logger.exception("%s cache observer %r failed", self.domain, callback)


class OrdersReconciler(CacheReconciler):
    """All orders; every applied event is announced via ``order_changed``."""

    domain = "orders"

    def validate(self, payload: Any) -> Entity:
        return validate_order(payload)

    def apply_created(self, entity: Entity) -> bool:
        changed = super().apply_created(entity)
        self._announce(CREATED, entity["id"], entity, entity.get("tableId"))
        return changed

    def apply_updated(self, entity: Entity) -> bool:
        changed = super().apply_updated(entity)
        self._announce(UPDATED, entity["id"], entity, entity.get("tableId"))
        return changed

    def apply_removed(self, entity_id: EntityId, table_id: int | None = None) -> bool:
        if table_id is None:
            existing = self.get(entity_id)
            table_id = existing.get("tableId") if existing else None
        changed = super().apply_removed(entity_id)
        self._announce(REMOVED, entity_id, None, table_id)
        return changed

    def handle_cancelled(self, payload: Any) -> None:
        try:
            order_id, table_id = validate_cancellation(payload)
        except MalformedPayloadError as exc:
            logger.warning("Dropping malformed order cancellation: %s", exc)
            return
        self.apply_removed(order_id, table_id=table_id)

    def _announce(
        self,
        change: str,
        entity_id: EntityId,
        entity: Entity | None,
        table_id: Any,
    ) -> None:
        responses = order_changed.send_robust(
            sender=self,
            change=change,
            entity_id=entity_id,
            entity=entity,
            table_id=table_id,
        )
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    "order_changed receiver %r failed for %s %s",
                    receiver,
                    change,
                    entity_id,
                    exc_info=response,
                )


class DerivedReconciler(CacheReconciler):
    """A cache that re-derives itself from an OrdersReconciler's changes."""

    def __init__(self, orders: OrdersReconciler | None = None) -> None:
        super().__init__()
        self._source: OrdersReconciler | None = None
        if orders is not None:
            self.follow(orders)

    def follow(self, orders: OrdersReconciler) -> None:
        self.unfollow()
        order_changed.connect(self._on_order_changed, sender=orders)
        self._source = orders

    def unfollow(self) -> None:
        if self._source is not None:
            order_changed.disconnect(self._on_order_changed, sender=self._source)
            self._source = None

    def _on_order_changed(self, sender, change, entity_id, entity=None, **kwargs):
        raise NotImplementedError


class KitchenQueueReconciler(DerivedReconciler):
    """Orders the kitchen still has to act on (pending, preparing, ready)."""

    domain = "kitchen"

    def validate(self, payload: Any) -> Entity:
        return validate_order(payload)

    def includes(self, entity: Entity) -> bool:
        return order_status(entity) in KITCHEN_STATUSES

    def grouped(self) -> dict[str, list[Entity]]:
        """Kitchen display columns, each most-recent-first."""

        columns: dict[str, list[Entity]] = {
            OrderStatus.PENDING.value: [],
            OrderStatus.PREPARING.value: [],
            OrderStatus.READY.value: [],
        }
        for item in self._items:
            status = order_status(item)
            if status is not None and status.value in columns:
                columns[status.value].append(item)
        return columns

    def _on_order_changed(self, sender, change, entity_id, entity=None, **kwargs):
        if change == REMOVED:
            self.apply_removed(entity_id)
        elif change == CREATED:
            self.apply_created(entity)
        else:
            self.apply_updated(entity)


class TablesReconciler(DerivedReconciler):
    """Tables; an order change marks the occupancy view stale.

    Occupancy is computed server-side, so the cache cannot fix itself from an
    order event. It flags itself ``stale`` and tells observers, and the
    application re-fetches and calls ``seed``.
    """

    domain = "tables"

    def __init__(self, orders: OrdersReconciler | None = None) -> None:
        self.stale = False
        super().__init__(orders)

    def seed(self, entities: Iterable[Any]) -> None:
        self.stale = False
        super().seed(entities)

    def _on_order_changed(self, sender, change, entity_id, entity=None, **kwargs):
        self.stale = True
        self._notify(INVALIDATED, kwargs.get("table_id"))


class MenuItemsReconciler(CacheReconciler):
    domain = "menu"
