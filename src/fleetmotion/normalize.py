"""Normalization helpers.

Coerces upstream numbers so that malformed
values never reach the frame loop as NaN positions.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    """Parse *value* as a finite float, ``None`` otherwise."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def safe_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "t", "yes", "y"}:
        return True
    if normalized in {"0", "false", "f", "no", "n"}:
        return False
    return None


def valid_latitude(value: Any) -> float | None:
    lat = safe_float(value)
    if lat is None or not -90.0 <= lat <= 90.0:
        return None
    return lat


def valid_longitude(value: Any) -> float | None:
    lng = safe_float(value)
    if lng is None or not -180.0 <= lng <= 180.0:
        return None
    return lng


def plausible_speed(value: Any, ceiling_kmh: float) -> float | None:
    """Return a speed in km/h, or ``None`` when negative or absurd."""
    speed = safe_float(value)
    if speed is None or speed < 0 or speed > ceiling_kmh:
        return None
    return speed


def normalize_bearing(value: Any) -> float | None:
    """Wrap a heading into ``[0, 360)`` degrees."""
    bearing = safe_float(value)
    if bearing is None:
        return None
    wrapped = bearing % 360.0
    # -1e-18 % 360 rounds to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped
