"""Read and write orchestration for sensor readings."""

from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from app.schemas import (
    DisplaySensor,
    HistoricalDataPoint,
    Pagination,
    SensorHistoryPage,
    WebhookErrorItem,
    WebhookReading,
)
from datastore.sensor_table import ReadingQuery, SensorDataTable, build_default_table
from models.records import SensorReading
from models.sensors import SENSOR_CONFIG, SENSOR_TYPES
from services.aggregator import Aggregator, SensorAverage
from settings import get_settings

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# ``status`` is derived, so it sorts by the value it is derived from.
SORT_COLUMNS = {
    "recorded_at": "recorded_at",
    "type": "type",
    "value": "value",
    "status": "value",
}


class InvalidQueryError(ValueError):
    """Raised for request parameters that must be rejected before querying."""


class BatchValidationError(ValueError):
    """A webhook batch had invalid elements; ``errors`` lists every violation."""

    def __init__(self, message: str, errors: Sequence[WebhookErrorItem]) -> None:
        super().__init__(message)
        self.errors = list(errors)


def validate_batch(payload: Any) -> List[WebhookReading]:
    """Validate a single reading or a list of readings as one all-or-nothing batch."""
    items = payload if isinstance(payload, list) else [payload]
    if not items:
        raise BatchValidationError(
            "Invalid sensor reading payload",
            [WebhookErrorItem(index=0, field="(root)", message="At least one sensor reading is required")],
        )

    readings: List[WebhookReading] = []
    errors: List[WebhookErrorItem] = []
    for index, item in enumerate(items):
        try:
            readings.append(WebhookReading.model_validate(item))
        except ValidationError as exc:
            for error in exc.errors():
                field = ".".join(str(part) for part in error["loc"]) or "(root)"
                message = error["msg"].replace("Value error, ", "")
                errors.append(WebhookErrorItem(index=index, field=field, message=message))

    if errors:
        raise BatchValidationError("Invalid sensor reading payload", errors)
    return readings


@dataclass(frozen=True)
class HistoryPageRequest:
    page: int = 1
    page_size: int = 10
    sort_by: str = "recorded_at"
    sort_order: str = "desc"
    sensor_type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def validate(self) -> None:
        if self.page < 1 or self.page_size < 1 or self.page_size > MAX_PAGE_SIZE:
            raise InvalidQueryError("Invalid pagination parameters")
        if self.sort_order not in ("asc", "desc"):
            raise InvalidQueryError('Invalid sort order. Must be "asc" or "desc"')

    def to_query(self) -> ReadingQuery:
        return ReadingQuery(
            sensor_type=self.sensor_type or None,
            recorded_from=_as_utc(self.start_date),
            recorded_to=_as_utc(self.end_date),
            order_by=SORT_COLUMNS.get(self.sort_by, "recorded_at"),
            ascending=self.sort_order == "asc",
            offset=(self.page - 1) * self.page_size,
            limit=self.page_size,
        )


class ReadingsService:
    """Coordinates table access and aggregation for the dashboard endpoints."""

    def __init__(
        self,
        table: SensorDataTable,
        aggregator: Aggregator,
        workers: int = 6,
    ) -> None:
        self.table = table
        self.aggregator = aggregator
        self.executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="latest-reading"
        )

    def latest_by_type(self) -> Dict[str, Optional[SensorReading]]:
        """Fetch the newest reading of every sensor type concurrently.

        A failed fetch is logged and reported as ``None`` for that type only.
        """
        futures: Dict[str, Future[Optional[SensorReading]]] = {
            sensor_type: self.executor.submit(self.table.latest, sensor_type)
            for sensor_type in SENSOR_TYPES
        }

        latest: Dict[str, Optional[SensorReading]] = {}
        for sensor_type, future in futures.items():
            try:
                latest[sensor_type] = future.result()
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Failed to fetch latest reading",
                    extra={"sensor_type": sensor_type, "reason": str(exc)},
                )
                latest[sensor_type] = None
        return latest

    def current_readings(self) -> List[DisplaySensor]:
        latest = self.latest_by_type()
        return [
            self.aggregator.display_sensor(SENSOR_CONFIG[sensor_type], latest[sensor_type])
            for sensor_type in SENSOR_TYPES
        ]

    def history(self, num_days: int, now: Optional[datetime] = None) -> List[HistoricalDataPoint]:
        if isinstance(num_days, bool) or not isinstance(num_days, int) or num_days <= 0:
            raise InvalidQueryError("Invalid num_days parameter. Must be a positive integer.")

        since = (now or datetime.now(timezone.utc)) - timedelta(days=num_days)
        readings = self.table.select(ReadingQuery(recorded_from=since, ascending=True))
        points = self.aggregator.bucket_history(readings)
        logger.debug(
            "Built historical buckets",
            extra={"num_days": num_days, "reading_count": len(readings)},
        )
        return points

    def sensor_history(self, request: HistoryPageRequest) -> SensorHistoryPage:
        request.validate()
        rows, total = self.table.select_with_count(request.to_query())
        return SensorHistoryPage(
            data=[self.aggregator.history_row(row) for row in rows],
            pagination=Pagination(
                total=total,
                page=request.page,
                page_size=request.page_size,
                total_pages=math.ceil(total / request.page_size),
            ),
        )

    def averages_since(self, since: datetime) -> Dict[str, SensorAverage]:
        readings = self.table.select(ReadingQuery(recorded_from=_as_utc(since)))
        return self.aggregator.averages(readings)

    def ingest(self, readings: Sequence[WebhookReading]) -> int:
        """Store a validated batch in one table write. No deduplication is done."""
        rows = [
            SensorReading(
                type=reading.type,
                value=reading.value,
                unit=reading.unit,
                recorded_at=reading.recorded_at,
            )
            for reading in readings
        ]
        count = self.table.insert_many(rows)
        logger.info("Stored sensor readings", extra={"reading_count": count})
        return count

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache
def build_default_readings_service(
    workers: Optional[int] = None,
) -> ReadingsService:
    """Factory that wires the service with the default table."""
    table = build_default_table()
    worker_count = workers or get_settings().readings_workers
    return ReadingsService(table=table, aggregator=Aggregator(), workers=worker_count)
