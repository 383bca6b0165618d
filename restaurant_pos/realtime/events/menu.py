from __future__ import annotations

import logging
from typing import Any

from restaurant_pos.realtime.socketio import broadcast_event

logger = logging.getLogger(__name__)


def publish_menu_updated(menu_item: dict[str, Any]) -> None:
    # Every screen shows the menu, so this goes to all connected clients.
    broadcast_event("menu:updated", menu_item)
    logger.info("Emitted menu:updated for menu item %s", menu_item["id"])
