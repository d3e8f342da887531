from __future__ import annotations
import json
from collections import OrderedDict
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from app.schemas import AlertRecord, SensorReadingRecord
from settings import get_settings

ItemT = TypeVar("ItemT", bound=BaseModel)


class MockDynamoDBTable(Generic[ItemT]):
    """Partitioned table: items live under a partition key in arrival order.

    ``query`` returns the newest ``limit`` items of one partition, oldest
    first, which is all the ingestion pipeline needs from a store. With
    ``max_keys`` set, the partition appended to least recently is dropped
    once a new key would exceed the bound.
    """

    def __init__(
        self,
        name: str,
        model: Type[ItemT],
        persistence_path: Optional[Path] = None,
        max_items_per_key: Optional[int] = None,
        max_keys: Optional[int] = None,
    ) -> None:
        self.name = name
        self.model = model
        self.max_items_per_key = max_items_per_key
        self.max_keys = max_keys
        self._partitions: "OrderedDict[str, List[ItemT]]" = OrderedDict()
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append_item(self, key: str, item: ItemT) -> None:
        with self._lock:
            partition = self._partitions.setdefault(key, [])
            self._partitions.move_to_end(key)
            partition.append(item.model_copy(deep=True))
            if self.max_items_per_key is not None and len(partition) > self.max_items_per_key:
                del partition[: len(partition) - self.max_items_per_key]
            if self.max_keys is not None and len(self._partitions) > self.max_keys:
                self._partitions.popitem(last=False)
            self._persist()

    def query(self, key: str, limit: Optional[int] = None) -> list[ItemT]:
        with self._lock:
            partition = self._partitions.get(key, [])
            selected = partition[-limit:] if limit else partition
            return [item.model_copy(deep=True) for item in selected]

    def scan(self) -> list[ItemT]:
        """Return deep copies of every stored item, partition by partition."""

        with self._lock:
            return [
                item.model_copy(deep=True)
                for partition in self._partitions.values()
                for item in partition
            ]

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._partitions.keys())

    def count(self, key: Optional[str] = None) -> int:
        with self._lock:
            if key is not None:
                return len(self._partitions.get(key, []))
            return sum(len(partition) for partition in self._partitions.values())

    def clear(self) -> None:
        with self._lock:
            self._partitions.clear()
            self._persist()

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            key: [item.model_dump(mode="json") for item in partition]
            for key, partition in self._partitions.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, items in data.items():
            self._partitions[key] = [self.model.model_validate(payload) for payload in items]


@lru_cache
def build_default_readings_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockDynamoDBTable[SensorReadingRecord]:
    settings = get_settings()
    table_name = settings.readings_table_name if name is None else name
    table_path = settings.readings_table_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockDynamoDBTable(
        name=table_name,
        model=SensorReadingRecord,
        persistence_path=persistence,
        max_items_per_key=settings.readings_per_node_limit,
        max_keys=settings.history_max_nodes,
    )


@lru_cache
def build_default_alerts_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockDynamoDBTable[AlertRecord]:
    settings = get_settings()
    table_name = settings.alerts_table_name if name is None else name
    table_path = settings.alerts_table_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockDynamoDBTable(
        name=table_name,
        model=AlertRecord,
        persistence_path=persistence,
        max_keys=settings.history_max_nodes,
    )
