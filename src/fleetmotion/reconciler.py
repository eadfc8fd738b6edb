"""Position reconciliation.

Merges, per vehicle, the three places a position can come from:

1. the authoritative position service (ground truth for this poll),
2. the day's scheduled waypoints,
3. the last simulation state the backend persisted.

A vehicle for which none of them yields a finite coordinate is left out
of the cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from fleetmotion.config import AnimationTuning
from fleetmotion.geometry import LatLng
from fleetmotion.models.fleet import SimulationState, VehicleRecord, Waypoint
from fleetmotion.models.positions import PositionStatus, VehiclePosition
from fleetmotion.models.vehicle import STATUS_PRECEDENCE, VehicleStatus, VehicleViewModel, WaypointRef
from fleetmotion.normalize import normalize_bearing, plausible_speed, safe_float
from fleetmotion.sequencer import match_waypoint_index

_logger = logging.getLogger(__name__)

_STATUS_FROM_SERVICE: dict[PositionStatus, VehicleStatus] = {
    PositionStatus.MOVING: VehicleStatus.MOVING,
    PositionStatus.PARKED: VehicleStatus.PARKED,
    PositionStatus.COMPLETED: VehicleStatus.PARKED,
    PositionStatus.NOT_STARTED: VehicleStatus.INACTIVE,
}


def status_from_state(state: SimulationState) -> VehicleStatus | None:
    if state.is_parked:
        return VehicleStatus.PARKED
    if state.simulation_active:
        return VehicleStatus.MOVING
    if state.simulation_active is False:
        return VehicleStatus.INACTIVE
    return None


def resolve_status(hints: Iterable[VehicleStatus]) -> VehicleStatus:
    """Strongest hint by precedence (parked > moving > inactive)."""
    return max(hints, key=STATUS_PRECEDENCE.__getitem__, default=VehicleStatus.INACTIVE)


def waypoint_refs(waypoints: Sequence[Waypoint]) -> tuple[WaypointRef, ...]:
    ordered = sorted(waypoints, key=lambda w: w.sequence_number)
    return tuple(WaypointRef(lat=w.latitude, lng=w.longitude, sequence=w.sequence_number) for w in ordered)


class PositionReconciler:
    """Builds :class:`VehicleViewModel` objects for one poll cycle.

    Keeps the last known position of each vehicle between polls.  A moving
    vehicle whose authoritative position is missing is placed on the
    waypoint that follows where it was last seen; any other vehicle stays
    where it was last seen.
    """

    def __init__(self, tuning: AnimationTuning | None = None) -> None:
        self._tuning = tuning or AnimationTuning()
        self._known: dict[str, LatLng] = {}

    @property
    def known_positions(self) -> Mapping[str, LatLng]:
        return self._known

    def observe(self, positions: Mapping[str, LatLng]) -> None:
        """Record where vehicles are currently drawn."""
        for vehicle_id, point in positions.items():
            if point.is_finite():
                self._known[vehicle_id] = point

    def retain(self, vehicle_ids: Iterable[str]) -> None:
        keep = set(vehicle_ids)
        for vehicle_id in [v for v in self._known if v not in keep]:
            del self._known[vehicle_id]

    def _fallback_position(
        self,
        vehicle_id: str,
        refs: Sequence[WaypointRef],
        status: VehicleStatus,
    ) -> LatLng | None:
        known = self._known.get(vehicle_id)
        if status is not VehicleStatus.MOVING and known is not None:
            return known
        if not refs:
            return None
        if known is None:
            return refs[0].point
        index = match_waypoint_index(refs, known, self._tuning.waypoint_tolerance_m)
        if index is None:
            return refs[0].point
        return refs[min(index + 1, len(refs) - 1)].point

    def reconcile(
        self,
        vehicle: VehicleRecord,
        *,
        waypoints: Sequence[Waypoint] = (),
        position: VehiclePosition | None = None,
        state: SimulationState | None = None,
        route_label: str | None = None,
    ) -> VehicleViewModel | None:
        """Merge the sources for *vehicle* into a view-model.

        Parameters
        ----------
        vehicle : VehicleRecord
            The fleet row.
        waypoints : sequence of Waypoint
            Today's waypoints for the vehicle's active route.
        position : VehiclePosition or None
            Authoritative result for this poll, possibly partial.
        state : SimulationState or None
            Last persisted simulation state.
        route_label : str or None
            Name of the active route.

        Returns
        -------
        VehicleViewModel or None
            ``None`` when no source yields a renderable position.
        """
        refs = waypoint_refs(waypoints)
        hints: list[VehicleStatus] = []
        point: LatLng | None = None
        authoritative = False

        if position is not None:
            mapped = _STATUS_FROM_SERVICE.get(position.status)
            if mapped is not None:
                hints.append(mapped)
            fix = position.point
            if fix is not None and fix.is_finite():
                point = fix
                authoritative = True
                self._known[vehicle.id] = fix

        if state is not None and not hints:
            state_hint = status_from_state(state)
            if state_hint is not None:
                hints.append(state_hint)
        status = resolve_status(hints)

        if point is None:
            point = self._fallback_position(vehicle.id, refs, status)
        if point is None and state is not None:
            point = state.position

        if point is None or not point.is_finite():
            _logger.debug("No renderable position for vehicle %s this cycle", vehicle.id)
            return None

        ceiling = self._tuning.max_plausible_speed_kmh
        speed = plausible_speed(position.speed_kmh, ceiling) if position is not None else None
        if speed is None and state is not None:
            speed = plausible_speed(state.speed_kmh, ceiling)
        bearing = normalize_bearing(position.bearing) if position is not None else None
        if bearing is None and state is not None:
            bearing = normalize_bearing(state.bearing)

        eta_ms: float | None = None
        next_target: LatLng | None = None
        progress: float | None = None
        last_updated = state.updated_at if state is not None else None
        if position is not None:
            minutes = safe_float(position.minutes_to_next_waypoint)
            if minutes is not None and minutes >= 0:
                eta_ms = minutes * 60_000.0
            target = position.next_target
            if target is not None and target.is_finite():
                next_target = target
            progress = position.progress_percent
            last_updated = position.computed_at or last_updated

        return VehicleViewModel(
            id=vehicle.id,
            name=vehicle.name or vehicle.id,
            status=status,
            lat=point.lat,
            lng=point.lng,
            authoritative=authoritative,
            color_hint=vehicle.color,
            speed_kmh=speed,
            bearing_deg=bearing,
            next_target=next_target,
            eta_to_next_ms=eta_ms,
            waypoints=refs,
            vehicle_number=vehicle.vehicle_number,
            vehicle_type=vehicle.vehicle_type,
            route_label=route_label,
            progress_percent=progress,
            last_updated=last_updated,
        )
