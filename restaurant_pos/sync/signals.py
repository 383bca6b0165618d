from django.dispatch import Signal

# Sent by an OrdersReconciler after it has applied an order event.
# kwargs: change ("created" | "updated" | "removed"), entity_id, entity
# (the validated order, None for removals) and table_id when known.
order_changed = Signal()
