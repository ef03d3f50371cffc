from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class EventBridge:
    """In-process dispatch of ``domain:entity:verb`` notifications.

    Delivery is synchronous and follows registration order. A listener that
    raises is logged and skipped; the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event_name: str, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(event_name, []).append(listener)
        return lambda: self.off(event_name, listener)

    def off(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_name)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event_name]

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def emit(self, event_name: str, payload: Any = None) -> int:
        """Notify current listeners of ``event_name``; returns how many ran cleanly."""
        delivered = 0
        for listener in list(self._listeners.get(event_name, ())):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s failed", event_name)
                continue
            delivered += 1
        return delivered
