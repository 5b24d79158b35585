"""Compliance evaluation against sensor thresholds."""

from __future__ import annotations

from typing import Literal

from models.sensors import Threshold

ComplianceStatus = Literal["compliant", "violation"]


def calculate_status(value: float, threshold: Threshold) -> ComplianceStatus:
    """Return ``violation`` when either configured bound is crossed."""
    if threshold.min is not None and value < threshold.min:
        return "violation"
    if threshold.max is not None and value > threshold.max:
        return "violation"
    return "compliant"


def format_threshold_label(threshold: Threshold) -> str:
    if threshold.min is not None and threshold.max is not None:
        return f"{threshold.min:.1f} - {threshold.max:.1f}"
    if threshold.min is not None:
        return f"≥ {threshold.min:.1f}"
    if threshold.max is not None:
        return f"≤ {threshold.max:.1f}"
    return "N/A"
