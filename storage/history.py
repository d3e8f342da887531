"""Bounded per-node reading history kept in memory."""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from functools import lru_cache
from threading import Lock
from typing import Deque, Optional, Tuple

from models.records import SensorReading
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class _NodeHistory:
    __slots__ = ("readings", "lock")

    def __init__(self, capacity: int) -> None:
        self.readings: Deque[SensorReading] = deque(maxlen=capacity)
        self.lock = Lock()


class HistoryStore:
    """Arrival-ordered ring buffers keyed by node id.

    Appends for one node are serialized by that node's lock, so the
    append-and-evict step never interleaves with another append for the
    same node. The node map itself is bounded: once ``max_nodes`` histories
    exist, the node that was appended to least recently is dropped.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, max_nodes: Optional[int] = None) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1.")
        self.capacity = capacity
        self.max_nodes = max_nodes
        self._nodes: "OrderedDict[str, _NodeHistory]" = OrderedDict()
        self._registry_lock = Lock()

    def append(self, node_id: str, reading: SensorReading) -> None:
        history = self._history_for(node_id)
        with history.lock:
            history.readings.append(reading)

    def append_and_get(self, node_id: str, reading: SensorReading) -> Tuple[SensorReading, ...]:
        """Append ``reading`` and return the node's history in one critical section."""
        history = self._history_for(node_id)
        with history.lock:
            history.readings.append(reading)
            return tuple(history.readings)

    def get(self, node_id: str) -> Tuple[SensorReading, ...]:
        with self._registry_lock:
            history = self._nodes.get(node_id)
        if history is None:
            return ()
        with history.lock:
            return tuple(history.readings)

    def node_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._nodes.keys())

    def reset(self) -> None:
        with self._registry_lock:
            dropped = len(self._nodes)
            self._nodes.clear()
        logger.info("History store reset", extra={"status": f"dropped={dropped}"})

    def _history_for(self, node_id: str) -> _NodeHistory:
        with self._registry_lock:
            history = self._nodes.get(node_id)
            if history is not None:
                self._nodes.move_to_end(node_id)
                return history

            history = _NodeHistory(self.capacity)
            self._nodes[node_id] = history
            if self.max_nodes is not None and len(self._nodes) > self.max_nodes:
                evicted, _ = self._nodes.popitem(last=False)
                logger.warning(
                    "Evicted least recently seen node history",
                    extra={"node_id": evicted},
                )
            return history


@lru_cache
def build_default_history_store(
    capacity: Optional[int] = None,
    max_nodes: Optional[int] = None,
) -> HistoryStore:
    settings = get_settings()
    return HistoryStore(
        capacity=settings.history_capacity if capacity is None else capacity,
        max_nodes=settings.history_max_nodes if max_nodes is None else max_nodes,
    )
