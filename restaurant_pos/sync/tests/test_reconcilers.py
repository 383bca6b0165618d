from unittest import mock

import pytest

from restaurant_pos.sync import reconcilers
from restaurant_pos.sync.reconcilers import KitchenQueueReconciler
from restaurant_pos.sync.reconcilers import MenuItemsReconciler
from restaurant_pos.sync.reconcilers import OrdersReconciler
from restaurant_pos.sync.reconcilers import TablesReconciler
from restaurant_pos.sync.signals import order_changed


def order(order_id, status="PENDING", **fields):
    return {"id": order_id, "status": status, "tableId": 1, **fields}


@pytest.fixture
def orders():
    return OrdersReconciler()


@pytest.fixture
def kitchen(orders):
    kitchen = KitchenQueueReconciler(orders)
    yield kitchen
    kitchen.unfollow()


@pytest.fixture
def tables(orders):
    tables = TablesReconciler(orders)
    yield tables
    tables.unfollow()


class TestGenericRules:
    def test_created_twice_keeps_one_entry_with_latest_payload(self, orders):
        orders.handle_created(order("o1", total=10))
        orders.handle_created(order("o1", total=12))

        assert orders.items == [order("o1", total=12)]

    def test_new_entities_are_prepended(self):
        menu = MenuItemsReconciler()

        menu.apply_created({"id": 1})
        menu.apply_created({"id": 2})
        menu.apply_created({"id": 3})

        assert menu.ids() == [3, 2, 1]

    def test_update_replaces_in_place(self):
        menu = MenuItemsReconciler()
        menu.seed([{"id": 1}, {"id": 2}, {"id": 3}])

        menu.apply_updated({"id": 2, "price": "9.50"})

        assert menu.ids() == [1, 2, 3]
        assert menu.get(2) == {"id": 2, "price": "9.50"}

    def test_update_for_unknown_id_is_an_implicit_create(self):
        menu = MenuItemsReconciler()
        menu.seed([{"id": 1}])

        menu.apply_updated({"id": 9})

        assert menu.ids() == [9, 1]

    def test_remove_is_idempotent(self):
        menu = MenuItemsReconciler()
        menu.seed([{"id": 1}, {"id": 2}])

        assert menu.apply_removed(1) is True
        assert menu.apply_removed(1) is False
        assert menu.ids() == [2]

    def test_seed_deduplicates_and_drops_invalid_rows(self):
        menu = MenuItemsReconciler()

        menu.seed([{"id": 1, "v": "a"}, {"name": "no id"}, {"id": 1, "v": "b"}, "x"])

        assert menu.items == [{"id": 1, "v": "a"}]

    def test_ids_are_unique_after_mixed_events(self, orders):
        orders.handle_updated(order("o1"))
        orders.handle_created(order("o1", "PREPARING"))
        orders.handle_created(order("o2"))
        orders.handle_updated(order("o2", "READY"))

        assert orders.ids() == ["o2", "o1"]
        assert len(set(orders.ids())) == len(orders)

    def test_observers_are_notified(self):
        menu = MenuItemsReconciler()
        changes = []
        unsubscribe = menu.observe(lambda change, entity_id: changes.append((change, entity_id)))

        menu.apply_created({"id": 1})
        menu.apply_updated({"id": 1})
        menu.apply_removed(1)
        unsubscribe()
        menu.apply_created({"id": 2})

        assert changes == [("created", 1), ("updated", 1), ("removed", 1)]


class TestMalformedPayloads:
    def test_order_without_status_is_dropped(self, orders, kitchen):
        orders.handle_created({"id": "o1"})
        orders.handle_updated({"id": "o1", "status": "LOST"})

        assert len(orders) == 0
        assert len(kitchen) == 0

    def test_entity_without_id_is_dropped(self, tables):
        tables.handle_updated({"number": 4, "status": "FREE"})
        tables.handle_updated(None)

        assert len(tables) == 0

    def test_malformed_cancellation_is_dropped(self, orders):
        orders.handle_created(order("o1"))

        orders.handle_cancelled({"tableId": 1})

        assert orders.ids() == ["o1"]


class TestKitchenQueue:
    def test_only_kitchen_statuses_enter(self, orders, kitchen):
        orders.handle_created(order("o1", "PENDING"))
        orders.handle_created(order("o2", "SERVED"))
        orders.handle_created(order("o3", "ready"))

        assert kitchen.ids() == ["o3", "o1"]
        assert orders.ids() == ["o3", "o2", "o1"]

    def test_leaving_kitchen_status_evicts_but_orders_keep_it(self, orders, kitchen):
        orders.handle_created(order("o1", "PREPARING"))

        orders.handle_updated(order("o1", "PAID"))

        assert "o1" not in kitchen
        assert orders.get("o1")["status"] == "PAID"

    def test_update_into_kitchen_status_adds(self, orders, kitchen):
        orders.seed([order("o1", "SERVED")])

        orders.handle_updated(order("o1", "PREPARING"))

        assert kitchen.ids() == ["o1"]

    def test_cancel_removes_from_both(self, orders, kitchen):
        orders.handle_created(order("o1"))

        orders.handle_cancelled({"orderId": "o1", "tableId": 1})

        assert len(orders) == 0
        assert len(kitchen) == 0

    def test_kitchen_applies_even_when_orders_did_not_change(self, orders, kitchen):
        kitchen.seed([order("o1", "READY")])

        orders.handle_cancelled({"orderId": "o1", "tableId": 1})

        assert len(kitchen) == 0

    def test_grouped_columns(self, orders, kitchen):
        orders.handle_created(order("o1", "PENDING"))
        orders.handle_created(order("o2", "PREPARING"))
        orders.handle_created(order("o3", "PENDING"))

        grouped = kitchen.grouped()

        assert [o["id"] for o in grouped["PENDING"]] == ["o3", "o1"]
        assert [o["id"] for o in grouped["PREPARING"]] == ["o2"]
        assert grouped["READY"] == []

    def test_unfollow_stops_derivation(self, orders, kitchen):
        kitchen.unfollow()

        orders.handle_created(order("o1"))

        assert len(kitchen) == 0

    def test_independent_instances_do_not_leak(self, orders, kitchen):
        other_orders = OrdersReconciler()

        other_orders.handle_created(order("x1"))

        assert len(kitchen) == 0


class TestTables:
    def test_table_updates_upsert(self, tables):
        tables.handle_updated({"id": 1, "status": "FREE"})
        tables.handle_updated({"id": 1, "status": "OCCUPIED"})

        assert tables.items == [{"id": 1, "status": "OCCUPIED"}]

    def test_order_change_marks_tables_stale(self, orders, tables):
        changes = []
        tables.observe(lambda change, entity_id: changes.append((change, entity_id)))

        orders.handle_created(order("o1", tableId=4))

        assert tables.stale is True
        assert changes == [("invalidated", 4)]

    def test_seed_clears_stale(self, orders, tables):
        orders.handle_created(order("o1"))

        tables.seed([{"id": 1, "status": "OCCUPIED"}])

        assert tables.stale is False


class TestInvalidationSignal:
    def test_failing_receiver_is_logged_and_others_still_run(self, orders, kitchen):
        def broken(sender, **kwargs):
            msg = "receiver blew up"
            raise RuntimeError(msg)

        order_changed.connect(broken, sender=orders)
        try:
            with mock.patch.object(reconcilers, "logger") as logger:
                orders.handle_created(order("o1"))
        finally:
            order_changed.disconnect(broken, sender=orders)

        assert kitchen.ids() == ["o1"]
        logger.error.assert_called_once()
        args = logger.error.call_args.args
        assert args[1] is broken
        assert args[2:] == ("created", "o1")
        assert isinstance(logger.error.call_args.kwargs["exc_info"], RuntimeError)
