"""Fleet data rows: vehicles, routes, waypoints and last-known simulation state.

These mirror the tables the upstream data-preparation pipeline writes.
Numeric fields are ``None`` when the value is absent or unparseable.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from fleetmotion.geometry import LatLng, is_finite_point
from fleetmotion.models._base import FleetBaseModel, FleetTimestamp
from fleetmotion.normalize import safe_bool, safe_float, safe_int, safe_str, valid_latitude, valid_longitude

WEEKDAY_FIELDS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class VehicleRecord(FleetBaseModel):
    """An active vehicle of the fleet."""

    id: str
    name: str = ""
    color: str | None = None
    vehicle_number: str | None = None
    vehicle_type: str | None = None
    is_active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def _id_non_empty(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("vehicle id must be non-empty")
        return text

    @field_validator("color", "vehicle_number", "vehicle_type", mode="before")
    @classmethod
    def _coerce_optional_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("is_active", mode="before")
    @classmethod
    def _coerce_active(cls, value: Any) -> bool:
        parsed = safe_bool(value)
        return True if parsed is None else parsed


class RouteRecord(FleetBaseModel):
    """A weekly route assigned to a vehicle.

    The weekday flags say on which synthetic weekdays the route replays.
    """

    id: str
    vehicle_id: str
    route_name: str = ""
    is_active: bool = True
    total_waypoints: int | None = None
    monday: bool = False
    tuesday: bool = False
    wednesday: bool = False
    thursday: bool = False
    friday: bool = False
    saturday: bool = False
    sunday: bool = False

    @field_validator("id", "vehicle_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("is_active", *WEEKDAY_FIELDS, mode="before")
    @classmethod
    def _coerce_flags(cls, value: Any) -> bool:
        return bool(safe_bool(value))

    @field_validator("total_waypoints", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> int | None:
        return safe_int(value)

    def is_day_active(self, day_of_week: int) -> bool:
        """Whether the route runs on *day_of_week* (0 = Monday)."""
        if not 0 <= day_of_week <= 6:
            return False
        return bool(getattr(self, WEEKDAY_FIELDS[day_of_week]))


class Waypoint(FleetBaseModel):
    """A timestamped point of a weekly route.

    ``timestamp`` is already anchored to the synthetic reference week.
    """

    sequence_number: int
    latitude: float
    longitude: float
    timestamp: FleetTimestamp = None
    day_of_week: int = Field(default=0, ge=0, le=6)
    is_parking: bool = False
    route_id: str | None = None

    @field_validator("route_id", mode="before")
    @classmethod
    def _coerce_route_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("sequence_number", "day_of_week", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("latitude", mode="before")
    @classmethod
    def _coerce_latitude(cls, value: Any) -> float | None:
        return valid_latitude(value)

    @field_validator("longitude", mode="before")
    @classmethod
    def _coerce_longitude(cls, value: Any) -> float | None:
        return valid_longitude(value)

    @field_validator("is_parking", mode="before")
    @classmethod
    def _coerce_parking(cls, value: Any) -> bool:
        return bool(safe_bool(value))

    @property
    def point(self) -> LatLng:
        return LatLng(self.latitude, self.longitude)


class SimulationState(FleetBaseModel):
    """Last state the simulation backend persisted for a vehicle."""

    vehicle_id: str
    latitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("current_latitude", "latitude", "lat"),
    )
    longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("current_longitude", "longitude", "lng", "lon"),
    )
    speed_kmh: float | None = Field(default=None, validation_alias=AliasChoices("current_speed", "speed_kmh"))
    bearing: float | None = Field(default=None, validation_alias=AliasChoices("current_bearing", "bearing"))
    simulation_active: bool | None = None
    is_parked: bool | None = None
    updated_at: FleetTimestamp = None

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_vehicle_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("latitude", mode="before")
    @classmethod
    def _coerce_latitude(cls, value: Any) -> float | None:
        return valid_latitude(value)

    @field_validator("longitude", mode="before")
    @classmethod
    def _coerce_longitude(cls, value: Any) -> float | None:
        return valid_longitude(value)

    @field_validator("speed_kmh", "bearing", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("simulation_active", "is_parked", mode="before")
    @classmethod
    def _coerce_flags(cls, value: Any) -> bool | None:
        return safe_bool(value)

    @property
    def position(self) -> LatLng | None:
        if not is_finite_point(self.latitude, self.longitude):
            return None
        return LatLng(self.latitude, self.longitude)
