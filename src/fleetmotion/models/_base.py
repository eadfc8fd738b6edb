"""Base model and enum for upstream payloads.

Every wire model inherits from :class:`FleetBaseModel` which provides:

* ``extra="ignore"`` and ``populate_by_name=True`` so partial or
  over-complete payloads parse.
* A ``model_validator(mode="before")`` that strips sentinel values
  (``""``, ``"--"``, NaN, infinities) so the field default is used.
* A ``raw`` dict that captures the original payload.

Status enums inherit from :class:`FleetStrEnum` which adds an ``UNKNOWN``
member and a ``_missing_`` hook that returns it for unmapped values.
"""

from __future__ import annotations

import enum
import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an ISO-8601 string or epoch (seconds or ms) to a UTC datetime.

    Returns ``None`` when the value is missing or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        ts = int(value)
        if ts >= _MS_THRESHOLD:
            ts = ts // 1000
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


FleetTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to UTC datetimes."""


class FleetStrEnum(enum.StrEnum):
    """Base for upstream status tags.

    Every subclass **must** define ``UNKNOWN``.  Tags the service sends
    that have no mapped member resolve to ``UNKNOWN`` instead of raising.
    """

    @classmethod
    def _missing_(cls, value: object) -> FleetStrEnum:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        unknown: FleetStrEnum = cls["UNKNOWN"]
        return unknown


class FleetBaseModel(BaseModel):
    """Base for upstream payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original payload dict."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and not math.isfinite(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip sentinel values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned = cls._clean_dict(original)
        cleaned.setdefault("raw", original)
        return cleaned
