"""Aggregation logic turning raw sensor rows into dashboard views."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from app.schemas import (
    DisplaySensor,
    HistoricalDataPoint,
    RangeOut,
    SensorHistoryRow,
    ThresholdOut,
)
from models.records import SensorReading
from models.sensors import SENSOR_CONFIG, SENSOR_TYPES, SensorConfig, get_sensor_config
from services.status import calculate_status, format_threshold_label


@dataclass
class SensorAverage:
    """Mean value over a window and the number of readings behind it."""

    average: float
    count: int


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def display_sensor(
        self, config: SensorConfig, reading: Optional[SensorReading]
    ) -> DisplaySensor:
        """Merge one registry entry with its latest reading, if any."""
        threshold = ThresholdOut(
            min=config.threshold.min,
            max=config.threshold.max,
            label=format_threshold_label(config.threshold),
        )
        ranges = RangeOut(min=config.ranges.min, max=config.ranges.max)

        if reading is None:
            return DisplaySensor(
                id=config.id,
                name=config.name,
                unit=config.unit,
                threshold=threshold,
                ranges=ranges,
            )

        return DisplaySensor(
            id=config.id,
            name=config.name,
            value=reading.value,
            unit=config.unit,
            last_updated=reading.recorded_at,
            threshold=threshold,
            ranges=ranges,
            status=calculate_status(reading.value, config.threshold),
        )

    def bucket_history(self, readings: Iterable[SensorReading]) -> List[HistoricalDataPoint]:
        """Group readings by exact timestamp, one nullable column per sensor type."""
        buckets: Dict[datetime, Dict[str, object]] = {}

        for reading in readings:
            if reading.type not in SENSOR_CONFIG:
                continue
            bucket = buckets.get(reading.recorded_at)
            if bucket is None:
                bucket = {"timestamp": reading.recorded_at}
                bucket.update({sensor_type: None for sensor_type in SENSOR_TYPES})
                buckets[reading.recorded_at] = bucket
            bucket[reading.type] = reading.value

        return [
            HistoricalDataPoint.model_validate(buckets[timestamp])
            for timestamp in sorted(buckets)
        ]

    def history_row(self, reading: SensorReading) -> SensorHistoryRow:
        # Status is derived on every read; stored rows only hold raw values.
        config = get_sensor_config(reading.type)
        status = calculate_status(reading.value, config.threshold) if config else None
        return SensorHistoryRow(
            id=reading.id,
            type=reading.type,
            value=reading.value,
            unit=reading.unit,
            recorded_at=reading.recorded_at,
            status=status,
        )

    def averages(self, readings: Iterable[SensorReading]) -> Dict[str, SensorAverage]:
        totals: Dict[str, float] = {}
        counts: Dict[str, int] = {}

        for reading in readings:
            totals[reading.type] = totals.get(reading.type, 0.0) + reading.value
            counts[reading.type] = counts.get(reading.type, 0) + 1

        return {
            sensor_type: SensorAverage(
                average=round(totals[sensor_type] / count, 2), count=count
            )
            for sensor_type, count in counts.items()
        }
