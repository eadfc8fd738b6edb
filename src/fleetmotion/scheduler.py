"""Animation scheduler.

Each vehicle is in one of three states:

Idle
    Not moving.  No :class:`~fleetmotion.state.AnimationState` is kept and
    the marker sits on the reported position.
Transit
    Interpolating toward a real next point, along a resolved road path
    when one is available, else in a straight line.
Drift
    Moving but with no determinable next point.  The marker oscillates a
    few metres around its last point.

:meth:`AnimationScheduler.apply` is called once per vehicle per poll and
decides the state; :meth:`AnimationScheduler.tick` is called once per
frame and advances every leg.  Road-path lookups run as asyncio tasks
tagged with a per-vehicle generation; a result whose generation is no
longer current is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from fleetmotion.config import AnimationTuning
from fleetmotion.geometry import LatLng, distance_meters, offset, path_length
from fleetmotion.models.vehicle import VehicleViewModel
from fleetmotion.road_paths import RoadPathResolver
from fleetmotion.sequencer import next_waypoint
from fleetmotion.state import AnimationState, SimulatedPosition, ViewState

if TYPE_CHECKING:
    from fleetmotion.markers import Marker

_logger = logging.getLogger(__name__)

# Degrees; two coordinates closer than this are the same point.
SAME_POINT_EPSILON = 1e-6


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def same_point(a: LatLng, b: LatLng) -> bool:
    return abs(a.lat - b.lat) <= SAME_POINT_EPSILON and abs(a.lng - b.lng) <= SAME_POINT_EPSILON


def leg_duration_ms(distance_m: float, speed_kmh: float | None, tuning: AnimationTuning) -> float:
    """Milliseconds to cover *distance_m* at *speed_kmh*, clamped.

    A missing or non-positive speed uses the default cruising speed.
    """
    speed = speed_kmh if speed_kmh is not None and speed_kmh > 0 else tuning.default_speed_kmh
    duration = distance_m / (speed / 3.6) * 1000.0
    if not math.isfinite(duration):
        return tuning.min_leg_ms
    return min(max(duration, tuning.min_leg_ms), tuning.max_leg_ms)


class AnimationScheduler:
    """Per-vehicle motion state machine.

    Parameters
    ----------
    state : ViewState
        State owned by the map view.
    resolver : RoadPathResolver
        Road-path lookup used when a transit leg is planned.
    tuning : AnimationTuning
        Motion constants.
    clock : callable, optional
        Returns the current time in milliseconds.  Used when an async
        road-path lookup finishes.
    """

    def __init__(
        self,
        state: ViewState,
        resolver: RoadPathResolver,
        tuning: AnimationTuning | None = None,
        *,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._state = state
        self._resolver = resolver
        self._tuning = tuning or AnimationTuning()
        self._clock = clock
        self._latest: dict[str, VehicleViewModel] = {}
        self._fresh_hint: dict[str, LatLng] = {}
        self._targets: dict[str, LatLng] = {}
        self._last_fix: dict[str, LatLng] = {}
        self._catching_up: set[str] = set()

    def target_of(self, vehicle_id: str) -> LatLng | None:
        """Destination of the running or pending transit leg."""
        return self._targets.get(vehicle_id)

    def is_catching_up(self, vehicle_id: str) -> bool:
        return vehicle_id in self._catching_up

    # ------------------------------------------------------------------
    # Poll-driven transitions
    # ------------------------------------------------------------------

    def apply(self, vehicle: VehicleViewModel, marker: Marker, now: float) -> None:
        """Decide Idle, Transit or Drift for *vehicle* after a poll."""
        vehicle_id = vehicle.id
        self._latest[vehicle_id] = vehicle

        if not vehicle.is_moving:
            self._idle(vehicle, marker, now)
            return

        current = self._state.current_position(vehicle_id) or vehicle.position
        hint = vehicle.next_target
        if hint is not None:
            self._fresh_hint[vehicle_id] = hint
        else:
            self._fresh_hint.pop(vehicle_id, None)

        if self._needs_catch_up(vehicle, current):
            self._begin_catch_up(vehicle_id, current, vehicle.position, now)
            return
        if vehicle_id in self._catching_up and vehicle_id in self._state.animations:
            return

        in_flight = self._targets.get(vehicle_id)
        if in_flight is not None and (hint is None or same_point(in_flight, hint)):
            if hint is not None:
                self._fresh_hint.pop(vehicle_id, None)
            return

        target = self._choose_target(vehicle, current)
        if target is None:
            running = self._state.animations.get(vehicle_id)
            if running is not None and running.drift:
                return
            self._begin_drift(vehicle_id, current, now)
            return
        self._begin_transit(vehicle_id, current, target, now)

    def forget(self, vehicle_id: str) -> None:
        """Drop every piece of state kept for *vehicle_id*."""
        self._latest.pop(vehicle_id, None)
        self._fresh_hint.pop(vehicle_id, None)
        self._targets.pop(vehicle_id, None)
        self._last_fix.pop(vehicle_id, None)
        self._catching_up.discard(vehicle_id)
        self._state.forget(vehicle_id)

    def clear(self) -> None:
        self._latest.clear()
        self._fresh_hint.clear()
        self._targets.clear()
        self._last_fix.clear()
        self._catching_up.clear()

    def _idle(self, vehicle: VehicleViewModel, marker: Marker, now: float) -> None:
        vehicle_id = vehicle.id
        self._state.animations.pop(vehicle_id, None)
        self._state.drift_phase.pop(vehicle_id, None)
        self._fresh_hint.pop(vehicle_id, None)
        self._targets.pop(vehicle_id, None)
        self._catching_up.discard(vehicle_id)
        self._state.next_generation(vehicle_id)
        marker.set_position(vehicle.position)
        self._state.simulated[vehicle_id] = SimulatedPosition(vehicle.position, now)
        self._last_fix[vehicle_id] = vehicle.position

    def _needs_catch_up(self, vehicle: VehicleViewModel, current: LatLng) -> bool:
        if not vehicle.authoritative:
            return False
        fix = vehicle.position
        previous = self._last_fix.get(vehicle.id)
        self._last_fix[vehicle.id] = fix
        if previous is not None and same_point(previous, fix):
            return False
        return not same_point(current, fix)

    def _choose_target(self, vehicle: VehicleViewModel, position: LatLng) -> LatLng | None:
        hint = self._fresh_hint.pop(vehicle.id, None)
        if hint is not None and distance_meters(position, hint) > self._tuning.waypoint_tolerance_m:
            return hint
        return next_waypoint(vehicle, position, self._tuning.waypoint_tolerance_m)

    # ------------------------------------------------------------------
    # Leg construction
    # ------------------------------------------------------------------

    def _begin_catch_up(self, vehicle_id: str, origin: LatLng, fix: LatLng, now: float) -> None:
        self._targets.pop(vehicle_id, None)
        self._state.drift_phase.pop(vehicle_id, None)
        generation = self._state.next_generation(vehicle_id)
        self._state.animations[vehicle_id] = AnimationState(
            from_=origin,
            to=fix,
            start=now,
            duration=self._tuning.catch_up_ms,
            base=fix,
            generation=generation,
        )
        self._catching_up.add(vehicle_id)
        _logger.debug("Vehicle %s catching up to authoritative position", vehicle_id)

    def _begin_drift(self, vehicle_id: str, around: LatLng, now: float) -> None:
        self._targets.pop(vehicle_id, None)
        self._catching_up.discard(vehicle_id)
        generation = self._state.next_generation(vehicle_id)
        step = self._tuning.drift_offset_deg
        self._state.drift_phase[vehicle_id] = True
        self._state.animations[vehicle_id] = AnimationState(
            from_=around,
            to=offset(around, step, -step),
            start=now,
            duration=self._tuning.drift_first_leg_ms,
            base=around,
            drift=True,
            generation=generation,
        )
        _logger.debug("Vehicle %s drifting around %s", vehicle_id, around)

    def _begin_transit(self, vehicle_id: str, origin: LatLng, target: LatLng, now: float) -> None:
        self._state.animations.pop(vehicle_id, None)
        self._state.drift_phase.pop(vehicle_id, None)
        self._catching_up.discard(vehicle_id)
        self._targets[vehicle_id] = target
        generation = self._state.next_generation(vehicle_id)

        cached = self._resolver.cached(origin, target)
        if cached is not None:
            self._start_leg(vehicle_id, generation, origin, target, cached, now)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._start_leg(vehicle_id, generation, origin, target, None, now)
            return
        task = loop.create_task(self._resolve_leg(vehicle_id, generation, origin, target))
        self._state.track(vehicle_id, task)

    async def _resolve_leg(self, vehicle_id: str, generation: int, origin: LatLng, target: LatLng) -> None:
        path = await self._resolver.resolve(origin, target)
        if not self._state.alive or self._state.generation(vehicle_id) != generation:
            _logger.debug("Discarding road path for %s (generation %d is stale)", vehicle_id, generation)
            return
        self._start_leg(vehicle_id, generation, origin, target, path, self._clock())

    def _start_leg(
        self,
        vehicle_id: str,
        generation: int,
        origin: LatLng,
        target: LatLng,
        path: Sequence[LatLng] | None,
        now: float,
    ) -> None:
        vehicle = self._latest.get(vehicle_id)
        if vehicle is None or not vehicle.is_moving:
            return
        start = self._state.current_position(vehicle_id) or origin
        road = (start, *path, target) if path else None
        distance = path_length(road) if road is not None else distance_meters(start, target)
        self._state.animations[vehicle_id] = AnimationState(
            from_=start,
            to=target,
            start=now,
            duration=leg_duration_ms(distance, vehicle.speed_kmh, self._tuning),
            base=target,
            road_path=road,
            generation=generation,
        )

    # ------------------------------------------------------------------
    # Frame-driven transitions
    # ------------------------------------------------------------------

    def tick(self, now: float) -> None:
        """Advance every active leg to *now*.

        Legs are advanced from a snapshot taken at the start of the tick;
        completions are handled after every vehicle has moved.
        """
        completed: list[tuple[str, AnimationState]] = []
        for vehicle_id, animation in list(self._state.animations.items()):
            progress = animation.progress(now)
            point = animation.position_at(progress)
            marker = self._state.markers.get(vehicle_id)
            if marker is not None:
                marker.set_position(point)
            self._state.simulated[vehicle_id] = SimulatedPosition(point, now)
            if progress >= 1:
                completed.append((vehicle_id, animation))

        for vehicle_id, animation in completed:
            if self._state.animations.get(vehicle_id) is not animation:
                continue
            if animation.drift:
                self._complete_drift(vehicle_id, animation, now)
            else:
                self._complete_transit(vehicle_id, animation, now)

    def _complete_transit(self, vehicle_id: str, animation: AnimationState, now: float) -> None:
        del self._state.animations[vehicle_id]
        self._targets.pop(vehicle_id, None)
        self._catching_up.discard(vehicle_id)
        vehicle = self._latest.get(vehicle_id)
        if vehicle is None or not vehicle.is_moving:
            return

        reached = animation.to
        target = self._choose_target(vehicle, reached)
        if target is None:
            self._begin_drift(vehicle_id, reached, now)
        else:
            self._begin_transit(vehicle_id, reached, target, now)

    def _complete_drift(self, vehicle_id: str, animation: AnimationState, now: float) -> None:
        vehicle = self._latest.get(vehicle_id)
        if vehicle is None or not vehicle.is_moving:
            del self._state.animations[vehicle_id]
            self._state.drift_phase.pop(vehicle_id, None)
            return

        phase = not self._state.drift_phase.get(vehicle_id, True)
        self._state.drift_phase[vehicle_id] = phase
        step = self._tuning.drift_offset_deg if phase else -self._tuning.drift_offset_deg
        self._state.animations[vehicle_id] = AnimationState(
            from_=animation.to,
            to=offset(animation.base, step, -step),
            start=now,
            duration=self._tuning.drift_leg_ms,
            base=animation.base,
            drift=True,
            generation=animation.generation,
        )
