"""In-process fan-out of live events to WebSocket subscribers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SENSOR_UPDATE = "sensor_update"
NEW_ALERT = "new_alert"
SYSTEM_RESET = "system_reset"


@dataclass
class Subscription:
    queue: "asyncio.Queue[Dict[str, Any]]"
    loop: asyncio.AbstractEventLoop
    dropped: int = field(default=0)


class Broadcaster:
    """Publishes events to every subscriber without blocking the publisher.

    Events are handed to each subscriber's own event loop, so ``publish`` is
    safe to call from any thread. A subscriber whose queue is full loses the
    event; other subscribers are unaffected.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._subscribers: Dict[int, Subscription] = {}
        self._lock = Lock()
        self._next_id = 0

    def subscribe(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> tuple[int, "asyncio.Queue[Dict[str, Any]]"]:
        """Register a subscriber; must be called from the subscriber's loop."""
        target_loop = loop or asyncio.get_running_loop()
        queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=self.queue_size)
        with self._lock:
            self._next_id += 1
            subscriber_id = self._next_id
            self._subscribers[subscriber_id] = Subscription(queue=queue, loop=target_loop)
            count = len(self._subscribers)
        logger.info("Live subscriber connected", extra={"subscriber_count": count})
        return subscriber_id, queue

    def unsubscribe(self, subscriber_id: int) -> None:
        with self._lock:
            self._subscribers.pop(subscriber_id, None)
            count = len(self._subscribers)
        logger.info("Live subscriber disconnected", extra={"subscriber_count": count})

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, data: Any) -> int:
        """Queue ``event`` for every subscriber; returns how many were targeted."""
        message = {
            "event": event,
            "data": data,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            targets = list(self._subscribers.items())

        delivered = 0
        for subscriber_id, subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(self._offer, subscription, message)
            except RuntimeError:
                # Loop already closed: the subscriber went away without unsubscribing.
                self.unsubscribe(subscriber_id)
                continue
            delivered += 1
        return delivered

    @staticmethod
    def _offer(subscription: Subscription, message: Dict[str, Any]) -> None:
        try:
            subscription.queue.put_nowait(message)
        except asyncio.QueueFull:
            subscription.dropped += 1
            logger.warning(
                "Live subscriber queue full; event dropped",
                extra={"event": message["event"]},
            )


@lru_cache
def build_default_broadcaster() -> Broadcaster:
    return Broadcaster()
