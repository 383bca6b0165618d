from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventDispatcher:
    """Routes inbound named events to the handlers registered for them.

    Handlers run synchronously, in registration order, for the exact event
    name. Registering the same handler twice is a no-op so components that
    mount and unmount repeatedly cannot leak duplicate handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._handlers[event]

    def clear(self) -> None:
        self._handlers.clear()

    def _handlers_for(self, event: str) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event, ()))

    def has_handlers(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    def dispatch(self, event: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every handler of ``event``.

        Returns the number of handlers invoked. A failing handler is logged
        and does not prevent the remaining handlers from running.
        """

        handlers = self._handlers_for(event)
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event)
        return len(handlers)
