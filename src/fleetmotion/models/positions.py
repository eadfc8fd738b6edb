"""Authoritative position service models.

The simulation backend computes, per vehicle, where the vehicle should be
right now on its weekly route.  Any field of a response may be missing;
the models parse what is there and leave the rest ``None``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from fleetmotion.geometry import LatLng, is_finite_point
from fleetmotion.models._base import FleetBaseModel, FleetStrEnum, FleetTimestamp
from fleetmotion.models.fleet import Waypoint
from fleetmotion.normalize import safe_float, safe_str, valid_latitude, valid_longitude

_logger = logging.getLogger(__name__)


class PositionStatus(FleetStrEnum):
    """Status tag computed by the simulation backend."""

    MOVING = "moving"
    PARKED = "parked"
    COMPLETED = "completed"
    NOT_STARTED = "not_started"
    UNKNOWN = "unknown"


class Coordinates(FleetBaseModel):
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))

    @field_validator("latitude", mode="before")
    @classmethod
    def _coerce_latitude(cls, value: Any) -> float | None:
        return valid_latitude(value)

    @field_validator("longitude", mode="before")
    @classmethod
    def _coerce_longitude(cls, value: Any) -> float | None:
        return valid_longitude(value)

    def to_latlng(self) -> LatLng | None:
        if not is_finite_point(self.latitude, self.longitude):
            return None
        return LatLng(self.latitude, self.longitude)


class Movement(FleetBaseModel):
    speed_kmh: float | None = Field(default=None, validation_alias=AliasChoices("speed_kmh", "speed"))
    bearing: float | None = Field(default=None, validation_alias=AliasChoices("bearing", "heading"))

    @field_validator("speed_kmh", "bearing", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)


class Eta(FleetBaseModel):
    minutes_to_next_waypoint: float | None = None

    @field_validator("minutes_to_next_waypoint", mode="before")
    @classmethod
    def _coerce_minutes(cls, value: Any) -> float | None:
        return safe_float(value)


class CurrentSegment(FleetBaseModel):
    from_position: Coordinates | None = None
    to_position: Coordinates | None = None


class RouteProgress(FleetBaseModel):
    progress_percent: float | None = Field(
        default=None,
        validation_alias=AliasChoices("progress_percent", "percent_complete"),
    )
    current_segment: CurrentSegment | None = None

    @field_validator("progress_percent", mode="before")
    @classmethod
    def _coerce_percent(cls, value: Any) -> float | None:
        return safe_float(value)


class VehiclePosition(FleetBaseModel):
    """Per-vehicle result of the authoritative position fetch.

    Parameters
    ----------
    vehicle_id : str
        Vehicle the result belongs to.
    status : PositionStatus
        Status tag, ``UNKNOWN`` when absent or unrecognised.
    position : Coordinates or None
        Computed position.
    movement : Movement or None
        Speed and bearing hints.
    eta : Eta or None
        Minutes until the next waypoint.
    route_progress : RouteProgress or None
        Progress along the day's route; ``current_segment.to_position`` is
        the next-target hint.
    """

    vehicle_id: str
    status: PositionStatus = PositionStatus.UNKNOWN
    position: Coordinates | None = None
    movement: Movement | None = None
    eta: Eta | None = None
    route_progress: RouteProgress | None = None
    computed_at: FleetTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("computed_at", "timestamp", "last_updated"),
    )

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_vehicle_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> PositionStatus:
        text = safe_str(value)
        return PositionStatus(text) if text is not None else PositionStatus.UNKNOWN

    @property
    def point(self) -> LatLng | None:
        return self.position.to_latlng() if self.position is not None else None

    @property
    def next_target(self) -> LatLng | None:
        progress = self.route_progress
        if progress is None or progress.current_segment is None or progress.current_segment.to_position is None:
            return None
        return progress.current_segment.to_position.to_latlng()

    @property
    def speed_kmh(self) -> float | None:
        return self.movement.speed_kmh if self.movement is not None else None

    @property
    def bearing(self) -> float | None:
        return self.movement.bearing if self.movement is not None else None

    @property
    def minutes_to_next_waypoint(self) -> float | None:
        return self.eta.minutes_to_next_waypoint if self.eta is not None else None

    @property
    def progress_percent(self) -> float | None:
        return self.route_progress.progress_percent if self.route_progress is not None else None


class PositionsResponse(FleetBaseModel):
    """Batch response; accepts a bare list or ``{"vehicles": [...]}``."""

    vehicles: list[VehiclePosition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("vehicles", "positions", "results"),
    )

    @model_validator(mode="before")
    @classmethod
    def _wrap_list(cls, values: Any) -> Any:
        if isinstance(values, list):
            return {"vehicles": values}
        return values

    @field_validator("vehicles", mode="before")
    @classmethod
    def _drop_malformed(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        parsed: list[VehiclePosition] = []
        for item in value:
            if not isinstance(item, dict) or not safe_str(item.get("vehicle_id")):
                continue
            try:
                parsed.append(VehiclePosition.model_validate(item))
            except ValidationError as exc:
                _logger.debug(
                    "Dropping malformed position for %s: %s",
                    item.get("vehicle_id"),
                    exc.errors(include_url=False),
                )
        return parsed

    def by_vehicle(self) -> dict[str, VehiclePosition]:
        return {item.vehicle_id: item for item in self.vehicles}


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )


class WaypointPayload(_RequestModel):
    sequence_number: int
    latitude: float
    longitude: float
    timestamp: datetime | None = None
    day_of_week: int = Field(ge=0, le=6)
    is_parking: bool = False

    @classmethod
    def from_waypoint(cls, waypoint: Waypoint) -> WaypointPayload:
        return cls(
            sequence_number=waypoint.sequence_number,
            latitude=waypoint.latitude,
            longitude=waypoint.longitude,
            timestamp=waypoint.timestamp,
            day_of_week=waypoint.day_of_week,
            is_parking=waypoint.is_parking,
        )


class VehicleRouteRequest(_RequestModel):
    vehicle_id: str
    waypoints: list[WaypointPayload] = Field(default_factory=list)
    is_day_active: bool = False

    @field_validator("vehicle_id")
    @classmethod
    def _vehicle_id_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("vehicle_id must be non-empty")
        return value


class PositionsRequest(_RequestModel):
    """Batch request for the current synthetic weekday."""

    timestamp: datetime
    day_of_week: int = Field(ge=0, le=6)
    vehicles: list[VehicleRouteRequest] = Field(default_factory=list)
