"""Map view: one frame loop driving markers on one map surface."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from typing import Any

from fleetmotion.config import AnimationTuning
from fleetmotion.exceptions import FleetError
from fleetmotion.geometry import LatLng
from fleetmotion.markers import MapSurface, MarkerSynchronizer
from fleetmotion.models.vehicle import VehicleViewModel
from fleetmotion.road_paths import RoadPathResolver, RoutingCapability
from fleetmotion.scheduler import AnimationScheduler, monotonic_ms
from fleetmotion.state import ViewState

_logger = logging.getLogger(__name__)


class MapView:
    """Animated fleet map.

    Usage::

        async with MapView(surface, routing) as view:
            view.update(vehicles)
            ...

    Parameters
    ----------
    surface : MapSurface
        Map widget adapter.
    routing : RoutingCapability
        Road-path provider.
    tuning : AnimationTuning, optional
        Motion constants.
    clock : callable, optional
        Millisecond clock; ``time.monotonic`` based by default.
    """

    def __init__(
        self,
        surface: MapSurface,
        routing: RoutingCapability,
        *,
        tuning: AnimationTuning | None = None,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._tuning = tuning or AnimationTuning()
        self._clock = clock
        self._state = ViewState()
        self._resolver = RoadPathResolver(
            routing,
            precision=self._tuning.path_key_precision,
            cache=self._state.road_path_cache,
        )
        self._scheduler = AnimationScheduler(self._state, self._resolver, self._tuning, clock=clock)
        self._markers = MarkerSynchronizer(self._state, surface, self._scheduler, self._tuning)
        self._frame_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> MapView:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def scheduler(self) -> AnimationScheduler:
        return self._scheduler

    @property
    def markers(self) -> MarkerSynchronizer:
        return self._markers

    @property
    def alive(self) -> bool:
        return self._state.alive

    def start(self) -> None:
        """Launch the frame loop on the running event loop."""
        if not self._state.alive:
            raise FleetError("MapView is closed")
        if self._frame_task is None or self._frame_task.done():
            self._frame_task = asyncio.get_running_loop().create_task(self._run_frames())

    async def _run_frames(self) -> None:
        while self._state.alive:
            try:
                self._scheduler.tick(self._clock())
            except Exception:
                _logger.exception("Animation frame failed")
            await asyncio.sleep(self._tuning.frame_interval)

    def tick(self) -> None:
        """Advance one frame outside the loop."""
        if self._state.alive:
            self._scheduler.tick(self._clock())

    def update(self, vehicles: Sequence[VehicleViewModel]) -> None:
        """Hand the latest poll's vehicles to the view."""
        if not self._state.alive:
            _logger.debug("Ignoring update on closed view")
            return
        self._markers.sync(vehicles, self._clock())

    def focus(self, vehicle_id: str, requested_at: object) -> bool:
        if not self._state.alive:
            return False
        return self._markers.focus(vehicle_id, requested_at)

    def fit_to_vehicles(self) -> bool:
        if not self._state.alive:
            return False
        return self._markers.fit_to_vehicles()

    def simulated_positions(self) -> dict[str, LatLng]:
        """Where each vehicle's marker was last drawn."""
        positions = {vehicle_id: cached.point for vehicle_id, cached in self._state.simulated.items()}
        for vehicle_id, marker in self._state.markers.items():
            positions.setdefault(vehicle_id, marker.position)
        return positions

    async def close(self) -> None:
        """Stop the frame loop, cancel pending lookups and drop all state."""
        if not self._state.alive:
            return
        self._state.alive = False
        task, self._frame_task = self._frame_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._markers.clear()
        self._scheduler.clear()
        self._state.clear()
