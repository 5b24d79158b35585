"""Static sensor registry: display metadata, compliance thresholds and ranges."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True, slots=True)
class Threshold:
    """Compliance bounds. Either side may be absent."""

    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True, slots=True)
class DisplayRange:
    min: float
    max: float


@dataclass(frozen=True, slots=True)
class SensorConfig:
    id: str
    name: str
    unit: str
    threshold: Threshold
    ranges: DisplayRange


_CONFIGS = (
    SensorConfig(
        id="ph",
        name="pH Level",
        unit="",
        threshold=Threshold(min=5.5, max=8.5),
        ranges=DisplayRange(min=4, max=11),
    ),
    SensorConfig(
        id="dissolvedOxygen",
        name="Dissolved Oxygen",
        unit="mg/L",
        threshold=Threshold(min=5),
        ranges=DisplayRange(min=0, max=15),
    ),
    SensorConfig(
        id="turbidity",
        name="Turbidity",
        unit="NTU",
        threshold=Threshold(max=50),
        ranges=DisplayRange(min=0, max=100),
    ),
    SensorConfig(
        id="conductivity",
        name="Conductivity",
        unit="µS/cm",
        threshold=Threshold(max=3000),
        ranges=DisplayRange(min=0, max=5000),
    ),
    SensorConfig(
        id="flowRate",
        name="Flow Rate",
        unit="m³/h",
        threshold=Threshold(max=100),
        ranges=DisplayRange(min=0, max=150),
    ),
    SensorConfig(
        id="tds",
        name="Total Dissolved Solids",
        unit="ppm",
        threshold=Threshold(max=500),
        ranges=DisplayRange(min=0, max=1000),
    ),
)

SENSOR_CONFIG: Mapping[str, SensorConfig] = MappingProxyType(
    {config.id: config for config in _CONFIGS}
)

# Registry order is the display order used by every aggregate.
SENSOR_TYPES: tuple[str, ...] = tuple(SENSOR_CONFIG)


def get_sensor_config(sensor_type: str) -> Optional[SensorConfig]:
    return SENSOR_CONFIG.get(sensor_type)


def is_known_sensor_type(sensor_type: str) -> bool:
    return sensor_type in SENSOR_CONFIG
