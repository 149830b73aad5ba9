# Overview: In-process change notifications published by services after a successful commit.

"""
Topics are plain strings built by the helpers below. Services publish after
db.session.commit() returns; nothing is published for a rolled-back write.

Handlers run synchronously on the publishing thread. A failing handler is
logged and does not stop delivery to the others.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], None]


def members_topic(tenant_id: int, user_id: int) -> str:
    return f"members:{tenant_id}:{user_id}"


def subscription_topic(tenant_id: int) -> str:
    return f"subscription:{tenant_id}"


def locations_topic(tenant_id: int) -> str:
    return f"locations:{tenant_id}"


def selection_topic(user_id: int) -> str:
    return f"selection:{user_id}"


class ChangeFeed:
    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register handler for topic. Returns a function that removes it again."""
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic)
                if handlers and handler in handlers:
                    handlers.remove(handler)
                    if not handlers:
                        del self._handlers[topic]

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        """Deliver payload to every handler of topic. Returns how many were called."""
        with self._lock:
            handlers = list(self._handlers.get(topic, ()))

        for handler in handlers:
            try:
                handler(topic, payload)
            except Exception:
                logger.exception("Change feed handler failed for topic %s", topic)
        return len(handlers)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._handlers.get(topic, ()))

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
