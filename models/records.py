"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A single stored sensor reading. Rows are never mutated once written."""

    type: str
    value: float
    unit: str
    recorded_at: datetime
    id: str = field(default_factory=lambda: str(uuid4()))

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "value": self.value,
            "unit": self.unit,
            "recorded_at": self.recorded_at.isoformat(),
        }

    @classmethod
    def from_record(cls, payload: dict) -> "SensorReading":
        return cls(
            id=str(payload["id"]),
            type=str(payload["type"]),
            value=float(payload["value"]),
            unit=str(payload.get("unit", "")),
            recorded_at=datetime.fromisoformat(payload["recorded_at"]),
        )
