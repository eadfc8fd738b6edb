"""Waypoint sequencing: which scheduled point comes after the current one."""

from __future__ import annotations

from collections.abc import Sequence

from fleetmotion.geometry import LatLng, distance_meters
from fleetmotion.models.vehicle import VehicleViewModel, WaypointRef

DEFAULT_TOLERANCE_M = 10.0


def match_waypoint_index(
    waypoints: Sequence[WaypointRef],
    position: LatLng,
    tolerance_m: float = DEFAULT_TOLERANCE_M,
) -> int | None:
    """Index of the waypoint *position* stands on.

    The first waypoint within *tolerance_m* wins, in sequence order.  When
    none is that close the nearest waypoint is used instead.
    """
    if not waypoints:
        return None

    nearest_index = 0
    nearest_distance = float("inf")
    for index, waypoint in enumerate(waypoints):
        distance = distance_meters(position, waypoint.point)
        if distance <= tolerance_m:
            return index
        if distance < nearest_distance:
            nearest_distance = distance
            nearest_index = index
    return nearest_index


def next_waypoint(
    vehicle: VehicleViewModel,
    position: LatLng,
    tolerance_m: float = DEFAULT_TOLERANCE_M,
) -> LatLng | None:
    """The waypoint following the one at *position*, ``None`` when exhausted."""
    waypoints = vehicle.waypoints
    index = match_waypoint_index(waypoints, position, tolerance_m)
    if index is None or index >= len(waypoints) - 1:
        return None
    return waypoints[index + 1].point
