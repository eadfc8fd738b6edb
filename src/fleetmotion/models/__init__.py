"""Data models for fleet payloads and view-models."""

from fleetmotion.models._base import FleetBaseModel, FleetStrEnum, FleetTimestamp, parse_timestamp
from fleetmotion.models.fleet import RouteRecord, SimulationState, VehicleRecord, Waypoint
from fleetmotion.models.positions import (
    Coordinates,
    CurrentSegment,
    Eta,
    Movement,
    PositionsRequest,
    PositionsResponse,
    PositionStatus,
    RouteProgress,
    VehiclePosition,
    VehicleRouteRequest,
    WaypointPayload,
)
from fleetmotion.models.vehicle import (
    STATUS_PRECEDENCE,
    VehicleListItem,
    VehicleStatus,
    VehicleViewModel,
    WaypointRef,
)

__all__ = [
    "STATUS_PRECEDENCE",
    "Coordinates",
    "CurrentSegment",
    "Eta",
    "FleetBaseModel",
    "FleetStrEnum",
    "FleetTimestamp",
    "Movement",
    "PositionStatus",
    "PositionsRequest",
    "PositionsResponse",
    "RouteProgress",
    "RouteRecord",
    "SimulationState",
    "VehicleListItem",
    "VehiclePosition",
    "VehicleRecord",
    "VehicleRouteRequest",
    "VehicleStatus",
    "VehicleViewModel",
    "Waypoint",
    "WaypointPayload",
    "WaypointRef",
    "parse_timestamp",
]
