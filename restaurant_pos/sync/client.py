from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .conf import ClientSettings
from .connection import Connection
from .connection import ConnectionManager
from .connection import Scheduler
from .payloads import MalformedPayloadError
from .payloads import validate_entity
from .reconcilers import KitchenQueueReconciler
from .reconcilers import MenuItemsReconciler
from .reconcilers import OrdersReconciler
from .reconcilers import TablesReconciler
from .rooms import RoomSubscriptionRegistry
from .status import ConnectionStatus
from .transport import Transport

logger = logging.getLogger(__name__)

PaymentObserver = Callable[[dict[str, Any]], None]


class RealtimeClient:
    """Everything one terminal needs to stay in sync, wired together.

    Construct one per application (or per test) and pass it around; there is
    no module-level instance.

    Re-fetching full state after a reconnect is left to the application:
    watch ``on_status_change`` for ``CONNECTED`` and ``seed`` the caches.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport_factory: Callable[[], Transport] | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.manager = ConnectionManager(
            transport_factory,
            settings=settings,
            scheduler=scheduler,
        )
        self.orders = OrdersReconciler()
        self.kitchen = KitchenQueueReconciler(self.orders)
        self.tables = TablesReconciler(self.orders)
        self.menu = MenuItemsReconciler()
        self._payment_observers: list[PaymentObserver] = []
        self._unsubscribe_status = self.manager.on_status_change(self._on_status)
        self.rooms = RoomSubscriptionRegistry(self.manager)

    @classmethod
    def from_settings(cls, **kwargs: Any) -> RealtimeClient:
        return cls(ClientSettings.from_django(), **kwargs)

    @property
    def status(self) -> ConnectionStatus:
        return self.manager.status

    async def connect(self, auth_token: str | None = None) -> Connection:
        return await self.manager.connect(auth_token)

    def disconnect(self) -> None:
        self.manager.disconnect()

    async def ping(self) -> bool:
        return await self.manager.ping()

    def subscribe(self, room: str) -> bool:
        return self.rooms.subscribe(room)

    def unsubscribe(self, room: str) -> bool:
        return self.rooms.unsubscribe(room)

    def on_status_change(
        self,
        callback: Callable[[ConnectionStatus], None],
    ) -> Callable[[], None]:
        return self.manager.on_status_change(callback)

    def on_payment_completed(self, callback: PaymentObserver) -> Callable[[], None]:
        if callback not in self._payment_observers:
            self._payment_observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._payment_observers:
                self._payment_observers.remove(callback)

        return unsubscribe

    def close(self) -> None:
        """Disconnect and detach the caches from each other."""

        self.disconnect()
        self.rooms.close()
        self._unsubscribe_status()
        self.kitchen.unfollow()
        self.tables.unfollow()

    def routes(self) -> dict[str, Callable[[Any], None]]:
        return {
            "order:created": self.orders.handle_created,
            "order:updated": self.orders.handle_updated,
            "order:cancelled": self.orders.handle_cancelled,
            "table:updated": self.tables.handle_updated,
            "menu:updated": self.menu.handle_updated,
            "payment:completed": self._handle_payment_completed,
            "connected": self._log_ack,
            "subscribed": self._log_ack,
            "unsubscribed": self._log_ack,
        }

    def _on_status(self, status: ConnectionStatus) -> None:
        if status is not ConnectionStatus.CONNECTED:
            return
        connection = self.manager.connection
        if connection is None:
            return
        # Re-binding the same handlers is a no-op on an existing dispatcher.
        for event, handler in self.routes().items():
            connection.dispatcher.on(event, handler)

    def _handle_payment_completed(self, payload: Any) -> None:
        try:
            payment = validate_entity(payload)
        except MalformedPayloadError as exc:
            logger.warning("Dropping malformed payment:completed event: %s", exc)
            return
        logger.info("Payment %s completed", payment["id"])
        for callback in list(self._payment_observers):
            try:
                callback(payment)
            except Exception:
                logger.exception("Payment observer %r failed", callback)

    @staticmethod
    def _log_ack(payload: Any) -> None:
        logger.debug("Realtime server acknowledged: %s", payload)
