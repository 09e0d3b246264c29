# agenda/services/events.py
"""Hub de notificaciones en proceso (reservas y sesiones).

Equivalente a un canal de cambios: quien se suscribe recibe un aviso después de
cada escritura confirmada y decide si recarga.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingChange:
    kind: str  # created | updated | deleted
    booking_id: int


@dataclass(frozen=True)
class AuthChange:
    kind: str  # signed_in | signed_out | password_reset
    user_id: Optional[int]


class Subscription:
    def __init__(self, hub: "EventHub", key: int):
        self._hub = hub
        self._key = key

    @property
    def active(self) -> bool:
        return self._hub.is_subscribed(self._key)

    def unsubscribe(self) -> None:
        self._hub._remove(self._key)


class EventHub:
    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[Any], None]] = {}
        self._next_key = 0

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        with self._lock:
            self._next_key += 1
            key = self._next_key
            self._subscribers[key] = callback
        logger.debug("hub=%s subscribe key=%s", self.name, key)
        return Subscription(self, key)

    def is_subscribed(self, key: int) -> bool:
        with self._lock:
            return key in self._subscribers

    def _remove(self, key: int) -> None:
        with self._lock:
            self._subscribers.pop(key, None)
        logger.debug("hub=%s unsubscribe key=%s", self.name, key)

    def publish(self, event: Any) -> None:
        with self._lock:
            callbacks = list(self._subscribers.values())
        for cb in callbacks:
            # Un suscriptor roto no debe tumbar la escritura que ya se confirmó
            try:
                cb(event)
            except Exception:
                logger.exception("hub=%s suscriptor falló con evento=%s", self.name, event)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


booking_events = EventHub("bookings")
auth_events = EventHub("auth")
