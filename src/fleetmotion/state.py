"""Per-view animation state.

A :class:`ViewState` is owned by exactly one map view.  Everything the
frame loop, the synchronizer and async path resolutions share lives here,
keyed by vehicle id, so tearing a view down is a single :meth:`ViewState.clear`.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import TYPE_CHECKING

from fleetmotion.geometry import LatLng, lerp, point_at_fraction

if TYPE_CHECKING:
    from fleetmotion.markers import Marker
    from fleetmotion.road_paths import PathKey


@dataclasses.dataclass(slots=True)
class AnimationState:
    """One leg of motion for one vehicle.

    ``start`` and ``duration`` are milliseconds on the view clock.
    ``base`` is the logical destination drift oscillates around.
    """

    from_: LatLng
    to: LatLng
    start: float
    duration: float
    base: LatLng
    drift: bool = False
    road_path: tuple[LatLng, ...] | None = None
    generation: int = 0

    def __post_init__(self) -> None:
        if not self.duration > 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if not (self.from_.is_finite() and self.to.is_finite()):
            raise ValueError("animation endpoints must be finite")

    def progress(self, now: float) -> float:
        return min(max((now - self.start) / self.duration, 0.0), 1.0)

    def position_at(self, progress: float) -> LatLng:
        if self.road_path is not None and len(self.road_path) >= 2:
            return point_at_fraction(self.road_path, progress)
        if progress >= 1:
            return self.to
        return lerp(self.from_, self.to, progress)


@dataclasses.dataclass(frozen=True, slots=True)
class SimulatedPosition:
    """Last interpolated marker position and when it was computed."""

    point: LatLng
    timestamp: float


@dataclasses.dataclass
class ViewState:
    """Everything one map view knows about the vehicles it renders."""

    markers: dict[str, Marker] = dataclasses.field(default_factory=dict)
    animations: dict[str, AnimationState] = dataclasses.field(default_factory=dict)
    simulated: dict[str, SimulatedPosition] = dataclasses.field(default_factory=dict)
    drift_phase: dict[str, bool] = dataclasses.field(default_factory=dict)
    generations: dict[str, int] = dataclasses.field(default_factory=dict)
    marker_colors: dict[str, str] = dataclasses.field(default_factory=dict)
    road_path_cache: dict[PathKey, tuple[LatLng, ...]] = dataclasses.field(default_factory=dict)
    pending: dict[str, set[asyncio.Task[None]]] = dataclasses.field(default_factory=dict)
    alive: bool = True

    def next_generation(self, vehicle_id: str) -> int:
        """Advance and return the leg generation for *vehicle_id*."""
        generation = self.generations.get(vehicle_id, 0) + 1
        self.generations[vehicle_id] = generation
        return generation

    def generation(self, vehicle_id: str) -> int:
        return self.generations.get(vehicle_id, 0)

    def track(self, vehicle_id: str, task: asyncio.Task[None]) -> None:
        tasks = self.pending.setdefault(vehicle_id, set())
        tasks.add(task)

        def _done(finished: asyncio.Task[None]) -> None:
            remaining = self.pending.get(vehicle_id)
            if remaining is None:
                return
            remaining.discard(finished)
            if not remaining:
                self.pending.pop(vehicle_id, None)

        task.add_done_callback(_done)

    def current_position(self, vehicle_id: str) -> LatLng | None:
        """Where the vehicle's marker really is right now."""
        cached = self.simulated.get(vehicle_id)
        if cached is not None:
            return cached.point
        marker = self.markers.get(vehicle_id)
        return marker.position if marker is not None else None

    def forget(self, vehicle_id: str) -> None:
        """Drop all per-vehicle state except the shared road-path cache."""
        self.markers.pop(vehicle_id, None)
        self.animations.pop(vehicle_id, None)
        self.simulated.pop(vehicle_id, None)
        self.drift_phase.pop(vehicle_id, None)
        self.generations.pop(vehicle_id, None)
        self.marker_colors.pop(vehicle_id, None)
        for task in self.pending.pop(vehicle_id, set()):
            task.cancel()

    def clear(self) -> None:
        for tasks in self.pending.values():
            for task in tasks:
                task.cancel()
        self.pending.clear()
        self.markers.clear()
        self.animations.clear()
        self.simulated.clear()
        self.drift_phase.clear()
        self.generations.clear()
        self.marker_colors.clear()
        self.road_path_cache.clear()
