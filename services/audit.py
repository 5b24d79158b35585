"""Mocked blockchain audit trail shown next to the sensor history."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.schemas import AuditTransaction

# (id, minutes ago, type, block number, status, description)
_LEDGER = (
    ("1", 5, "alert", 15847392, "confirmed",
     "Turbidity violation detected - Level: 58 NTU (Limit: 50 NTU)"),
    ("2", 15, "sensor_reading", 15847380, "confirmed",
     "Hourly sensor data batch recorded - All 6 parameters"),
    ("3", 35, "action_taken", 15847355, "confirmed",
     "Operator increased PAC dosage to 110 ppm per AI recommendation"),
    ("4", 65, "compliance_report", 15847320, "confirmed",
     "Daily compliance report generated - 83% compliant (5/6 parameters)"),
    ("5", 125, "sensor_reading", 15847285, "confirmed",
     "Hourly sensor data batch recorded - All 6 parameters"),
    ("6", 2, "sensor_reading", 15847398, "pending",
     "Current sensor readings pending blockchain confirmation"),
)


def data_hash(transaction_id: str, description: str) -> str:
    digest = hashlib.sha256(f"{transaction_id}:{description}".encode("utf-8")).hexdigest()
    return f"0x{digest[:40]}"


def audit_trail(now: Optional[datetime] = None) -> List[AuditTransaction]:
    """Return the ledger entries positioned relative to ``now``, newest first."""
    now = now or datetime.now(timezone.utc)
    transactions = [
        AuditTransaction(
            id=transaction_id,
            timestamp=now - timedelta(minutes=minutes_ago),
            type=kind,
            data_hash=data_hash(transaction_id, description),
            block_number=block_number,
            status=status,
            description=description,
        )
        for transaction_id, minutes_ago, kind, block_number, status, description in _LEDGER
    ]
    return sorted(transactions, key=lambda tx: tx.timestamp, reverse=True)
