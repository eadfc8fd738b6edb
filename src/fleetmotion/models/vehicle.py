"""Vehicle view-models handed from the poll cycle to the map view."""

from __future__ import annotations

import math
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetmotion.geometry import LatLng


class VehicleStatus(StrEnum):
    MOVING = "moving"
    PARKED = "parked"
    INACTIVE = "inactive"


#: Higher wins when sources disagree about a vehicle's status.
STATUS_PRECEDENCE: dict[VehicleStatus, int] = {
    VehicleStatus.PARKED: 2,
    VehicleStatus.MOVING: 1,
    VehicleStatus.INACTIVE: 0,
}


class WaypointRef(BaseModel):
    """A waypoint reduced to what the animation engine reads."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    lat: float
    lng: float
    sequence: int

    @property
    def point(self) -> LatLng:
        return LatLng(self.lat, self.lng)


class VehicleViewModel(BaseModel):
    """Transient per-poll description of one vehicle.

    Rebuilt from scratch on every poll and never mutated; ``lat``/``lng``
    is the authoritative or last-known position, and ``authoritative``
    says which.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    status: VehicleStatus
    lat: float
    lng: float
    authoritative: bool = False
    color_hint: str | None = None
    speed_kmh: float | None = Field(default=None, ge=0)
    bearing_deg: float | None = Field(default=None, ge=0, lt=360)
    next_target: LatLng | None = None
    eta_to_next_ms: float | None = Field(default=None, ge=0)
    waypoints: tuple[WaypointRef, ...] = ()
    vehicle_number: str | None = None
    vehicle_type: str | None = None
    route_label: str | None = None
    progress_percent: float | None = None
    last_updated: datetime | None = None

    @field_validator("lat", "lng")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinates must be finite")
        return value

    @field_validator("next_target")
    @classmethod
    def _finite_target(cls, value: LatLng | None) -> LatLng | None:
        if value is not None and not value.is_finite():
            return None
        return value

    @property
    def position(self) -> LatLng:
        return LatLng(self.lat, self.lng)

    @property
    def is_moving(self) -> bool:
        return self.status == VehicleStatus.MOVING

    @property
    def eta_next_minutes(self) -> float | None:
        if self.eta_to_next_ms is None:
            return None
        return self.eta_to_next_ms / 60_000.0


class VehicleListItem(BaseModel):
    """One row of the fleet side list."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    status: VehicleStatus
    status_color: str
    color: str | None = None
    route_label: str = "—"
    lat: float | None = None
    lng: float | None = None
    speed_kmh: float | None = None
    eta_next_minutes: float | None = None
    progress_percent: float | None = Field(default=None, ge=0, le=100)
    last_updated: datetime | None = None
    vehicle_number: str | None = None
    vehicle_type: str | None = None

    @property
    def position_label(self) -> str:
        if self.lat is None or self.lng is None:
            return "—"
        return f"{self.lat:.4f}, {self.lng:.4f}"
