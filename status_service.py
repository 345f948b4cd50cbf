# status_service.py
"""
Severity classification for oil analysis measurements.
Single source of truth for: status tiers, the limit/buffer rule, and the
case-level severity roll-up used by the dashboard and the PDF report.
"""

from __future__ import annotations

from typing import Iterable

NORMAL = "NORMAL"
ALERT = "ALERT"
ALARM = "ALARM"

STATUSES = (NORMAL, ALERT, ALARM)

# Higher rank wins when rolling up
_RANK = {NORMAL: 0, ALERT: 1, ALARM: 2}

# Multiplicative buffers applied to the limits for the ALERT tier.
# Not sign-safe for negative limits; kept as-is (see DESIGN.md).
LOWER_ALERT_FACTOR = 1.1
UPPER_ALERT_FACTOR = 0.9

SEVERITY_MESSAGES = {
    NORMAL: "Machine and lubricant are operating within normal parameters.",
    ALERT: "Attention required: one or more conditions need monitoring.",
    ALARM: "Critical condition detected: immediate action is recommended.",
}

# Short descriptions shown next to each tier when a case is assessed
MACHINE_CONDITION_HINTS = {
    NORMAL: "Machine is operating within normal parameters",
    ALERT: "Machine requires attention",
    ALARM: "Critical machine condition",
}
LUBRICANT_CONDITION_HINTS = {
    NORMAL: "Lubricant is in good condition",
    ALERT: "Lubricant degradation detected",
    ALARM: "Critical lubricant condition",
}


def classify(actual: float, lower: float | None = None, upper: float | None = None) -> str:
    """
    Classify a measured value against optional limits.
    Rules are checked in order and the first match wins:
      actual < lower            -> ALARM
      actual > upper            -> ALARM
      actual < lower * 1.1      -> ALERT
      actual > upper * 0.9      -> ALERT
      otherwise                 -> NORMAL
    A limit of 0 counts as set. Callers must parse/validate actual first.
    """
    if lower is not None and actual < lower:
        return ALARM
    if upper is not None and actual > upper:
        return ALARM
    if lower is not None and actual < lower * LOWER_ALERT_FACTOR:
        return ALERT
    if upper is not None and actual > upper * UPPER_ALERT_FACTOR:
        return ALERT
    return NORMAL


def is_valid_status(value: str | None) -> bool:
    return value in _RANK


def most_severe(statuses: Iterable[str | None]) -> str:
    """Return the most severe tier in statuses (ALARM > ALERT > NORMAL). Empty -> NORMAL."""
    best = NORMAL
    for s in statuses:
        if s in _RANK and _RANK[s] > _RANK[best]:
            best = s
    return best


def severity_message(status: str) -> str:
    """Canned human-readable message for a tier."""
    return SEVERITY_MESSAGES.get(status, SEVERITY_MESSAGES[NORMAL])


def count_by_status(statuses: Iterable[str | None]) -> dict[str, int]:
    """Counts per tier, always containing all three keys. Unknown values are ignored."""
    counts = {s: 0 for s in STATUSES}
    for s in statuses:
        if s in counts:
            counts[s] += 1
    return counts
