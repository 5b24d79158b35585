"""Mock IoT reading generator used to feed the webhook during demos."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SimulatedSensor:
    type: str
    unit: str
    min: float
    max: float
    optimal: float


SIMULATED_SENSORS = (
    SimulatedSensor("ph", "", 0, 14, 7.0),
    SimulatedSensor("dissolvedOxygen", "mg/L", 0, 20, 6.5),
    SimulatedSensor("turbidity", "NTU", 0, 200, 15),
    SimulatedSensor("conductivity", "µS/cm", 0, 10000, 1200),
    SimulatedSensor("flowRate", "m³/h", 0, 200, 85),
    SimulatedSensor("tds", "ppm", 0, 5000, 650),
)

DRIFT_FACTOR = 0.1
WALK_FRACTION = 0.05


@dataclass
class SimulatorState:
    """Last emitted value per sensor type, carried between ticks by the caller."""

    last_values: Dict[str, float] = field(default_factory=dict)


def generate_readings(
    state: SimulatorState,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[dict]:
    """Produce one webhook batch and advance ``state``.

    Each value drifts toward the sensor's optimum plus a bounded random walk,
    clamped to the sensor's physical range.
    """
    rng = rng or random.Random()
    recorded_at = (now or datetime.now(timezone.utc)).isoformat()

    batch = []
    for sensor in SIMULATED_SENSORS:
        last = state.last_values.get(sensor.type, sensor.optimal)
        drift = (sensor.optimal - last) * DRIFT_FACTOR
        walk = (rng.random() - 0.5) * (sensor.max - sensor.min) * WALK_FRACTION
        value = min(sensor.max, max(sensor.min, last + drift + walk))
        state.last_values[sensor.type] = value
        batch.append(
            {
                "type": sensor.type,
                "value": round(value, 2),
                "unit": sensor.unit,
                "recorded_at": recorded_at,
            }
        )
    return batch
