import random
from datetime import datetime, timezone

import pytest

from services.readings import validate_batch
from services.simulator import SIMULATED_SENSORS, SimulatorState, generate_readings

NOW = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class MidpointRandom(random.Random):
    """Always returns 0.5 so the random walk contributes nothing."""

    def random(self) -> float:
        return 0.5


def test_batch_covers_every_sensor_and_passes_webhook_validation() -> None:
    batch = generate_readings(SimulatorState(), now=NOW, rng=random.Random(7))

    assert [item["type"] for item in batch] == [sensor.type for sensor in SIMULATED_SENSORS]
    assert all(item["recorded_at"] == NOW.isoformat() for item in batch)
    assert len(validate_batch(batch)) == 6


def test_values_stay_within_physical_range() -> None:
    state = SimulatorState()
    rng = random.Random(11)
    limits = {sensor.type: (sensor.min, sensor.max) for sensor in SIMULATED_SENSORS}

    for _ in range(200):
        for item in generate_readings(state, now=NOW, rng=rng):
            low, high = limits[item["type"]]
            assert low <= item["value"] <= high


def test_values_drift_toward_optimum() -> None:
    state = SimulatorState(last_values={"ph": 14.0})

    batch = generate_readings(state, now=NOW, rng=MidpointRandom())

    ph = next(item for item in batch if item["type"] == "ph")
    assert ph["value"] == 13.3
    assert state.last_values["ph"] == pytest.approx(13.3)
    assert state.last_values["tds"] == 650
