# academy/realtime.py
"""
In-process publish/subscribe for live updates (support tickets, auth snapshots).

subscribe() hands back a Subscription; whoever holds it must release it.
As a context manager it is released on every exit path:

    with hub.subscribe("ticket:12", on_event):
        ...
"""
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Subscription:
    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Idempotent."""
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._release()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class Hub:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, channel: str, listener: Listener) -> Subscription:
        with self._lock:
            self._listeners[channel].append(listener)

        def _release() -> None:
            with self._lock:
                listeners = self._listeners.get(channel)
                if not listeners:
                    return
                try:
                    listeners.remove(listener)
                except ValueError:
                    pass
                if not listeners:
                    del self._listeners[channel]

        return Subscription(_release)

    def publish(self, channel: str, payload: Any) -> int:
        """Returns how many listeners were called."""
        with self._lock:
            listeners = list(self._listeners.get(channel, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                # keep delivering to the rest
                logger.exception("realtime listener failed on channel %s", channel)
        return len(listeners)

    def listener_count(self, channel: str) -> int:
        with self._lock:
            return len(self._listeners.get(channel, ()))


# Process-wide hub used by the routers
hub = Hub()


def ticket_channel(ticket_id: int) -> str:
    return f"ticket:{ticket_id}"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


ADMIN_CHANNEL = "admin"


def session_channel(user_id: int) -> str:
    """Revocation notices (sign-out, disable, password change) for one user's live sockets."""
    return f"session:{user_id}"
