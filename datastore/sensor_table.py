from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional, Sequence, Tuple

from models.records import SensorReading
from settings import get_settings

logger = logging.getLogger(__name__)

ORDERABLE_COLUMNS = frozenset({"recorded_at", "type", "value"})


class DatastoreError(RuntimeError):
    """Raised when the table cannot complete a read or write."""


@dataclass(frozen=True)
class ReadingQuery:
    """Filter, ordering and window applied to ``sensor_data`` rows.

    Both ``recorded_from`` and ``recorded_to`` are inclusive bounds.
    """

    sensor_type: Optional[str] = None
    recorded_from: Optional[datetime] = None
    recorded_to: Optional[datetime] = None
    order_by: str = "recorded_at"
    ascending: bool = True
    offset: int = 0
    limit: Optional[int] = None


class SensorDataTable:

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._rows: List[SensorReading] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert_many(self, readings: Sequence[SensorReading]) -> int:
        """Append all readings in one step; nothing is kept if the write fails."""
        with self._lock:
            previous = self._rows
            self._rows = previous + list(readings)
            try:
                self._persist()
            except (OSError, TypeError, ValueError) as exc:
                self._rows = previous
                raise DatastoreError(f"Failed to write to table {self.name!r}.") from exc
            return len(readings)

    def latest(self, sensor_type: str) -> Optional[SensorReading]:
        rows = self.select(
            ReadingQuery(sensor_type=sensor_type, order_by="recorded_at", ascending=False, limit=1)
        )
        return rows[0] if rows else None

    def select(self, query: ReadingQuery) -> List[SensorReading]:
        rows, _ = self.select_with_count(query)
        return rows

    def select_with_count(self, query: ReadingQuery) -> Tuple[List[SensorReading], int]:
        """Return the requested window plus the exact count of matching rows."""
        if query.order_by not in ORDERABLE_COLUMNS:
            raise ValueError(f"Cannot order by column {query.order_by!r}.")
        if query.offset < 0 or (query.limit is not None and query.limit < 0):
            raise ValueError("Offset and limit must not be negative.")

        with self._lock:
            matched = [row for row in self._rows if _matches(row, query)]

        matched.sort(
            key=lambda row: (getattr(row, query.order_by), row.recorded_at, row.id),
            reverse=not query.ascending,
        )
        end = None if query.limit is None else query.offset + query.limit
        return matched[query.offset:end], len(matched)

    def scan(self) -> list[SensorReading]:
        with self._lock:
            return list(self._rows)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [row.to_record() for row in self._rows]
        self.persistence_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable table file %s", self.persistence_path)
            data = []

        for payload in data:
            self._rows.append(SensorReading.from_record(payload))


def _matches(row: SensorReading, query: ReadingQuery) -> bool:
    if query.sensor_type is not None and row.type != query.sensor_type:
        return False
    if query.recorded_from is not None and row.recorded_at < query.recorded_from:
        return False
    if query.recorded_to is not None and row.recorded_at > query.recorded_to:
        return False
    return True


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> SensorDataTable:
    settings = get_settings()
    table_name = "sensor_data" if name is None else name
    table_path = settings.sensor_data_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return SensorDataTable(name=table_name, persistence_path=persistence)
