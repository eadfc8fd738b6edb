"""Dashboard poll cycle.

Loads fleet rows, asks the position service where every vehicle should be
right now, reconciles the two and hands the result to the map view and the
vehicle list.  Failures are reported through ``on_error`` with a generic
message; the map keeps animating whatever it already has.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import math
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Protocol

from fleetmotion.config import FleetConfig
from fleetmotion.datasource import SETTING_APP_NAME, SETTING_REFRESH_INTERVAL, FleetDataSource
from fleetmotion.exceptions import FleetError
from fleetmotion.models.fleet import RouteRecord, VehicleRecord, Waypoint
from fleetmotion.models.positions import (
    PositionsRequest,
    PositionsResponse,
    VehiclePosition,
    VehicleRouteRequest,
    WaypointPayload,
)
from fleetmotion.models.vehicle import VehicleListItem, VehicleStatus, VehicleViewModel
from fleetmotion.normalize import safe_float, safe_str
from fleetmotion.reconciler import PositionReconciler
from fleetmotion.view import MapView
from fleetmotion.week import anchor_to_week, synthetic_weekday, waypoints_for_day

_logger = logging.getLogger(__name__)

LIST_STATUS_COLORS: dict[VehicleStatus, str] = {
    VehicleStatus.MOVING: "#2563eb",
    VehicleStatus.PARKED: "#f59e0b",
    VehicleStatus.INACTIVE: "#6b7280",
}

LOAD_FAILED_MESSAGE = "Failed to load data"
POSITIONS_FAILED_MESSAGE = "Failed to refresh vehicle positions"


class PositionFetcher(Protocol):
    async def fetch_positions(self, request: PositionsRequest) -> PositionsResponse: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_vehicle_list(
    vehicles: Sequence[VehicleRecord],
    view_models: Mapping[str, VehicleViewModel],
    route_labels: Mapping[str, str] | None = None,
) -> list[VehicleListItem]:
    """Rows for the fleet side list, one per active vehicle.

    Vehicles without a renderable position this cycle are listed as
    inactive with no coordinates.
    """
    labels = route_labels or {}
    items: list[VehicleListItem] = []
    for vehicle in vehicles:
        model = view_models.get(vehicle.id)
        status = model.status if model is not None else VehicleStatus.INACTIVE
        progress = model.progress_percent if model is not None else None
        if progress is not None:
            progress = max(0.0, min(100.0, progress))
        items.append(
            VehicleListItem(
                id=vehicle.id,
                name=vehicle.name or vehicle.id,
                status=status,
                status_color=LIST_STATUS_COLORS[status],
                color=vehicle.color,
                route_label=labels.get(vehicle.id) or "—",
                lat=model.lat if model is not None else None,
                lng=model.lng if model is not None else None,
                speed_kmh=model.speed_kmh if model is not None else None,
                eta_next_minutes=model.eta_next_minutes if model is not None else None,
                progress_percent=progress,
                last_updated=model.last_updated if model is not None else None,
                vehicle_number=vehicle.vehicle_number,
                vehicle_type=vehicle.vehicle_type,
            )
        )
    return items


class FleetDashboard:
    """Periodic refresh of the fleet map.

    Parameters
    ----------
    config : FleetConfig
        Refresh interval, app name and animation constants.
    data_source : FleetDataSource
        Fleet rows.
    positions : PositionFetcher
        Authoritative position service client.
    view : MapView, optional
        Map to update after each cycle.
    on_error : callable, optional
        Receives a short user-facing message when a cycle fails.
    on_update : callable, optional
        Receives the vehicle list after each successful cycle.
    clock : callable, optional
        Wall clock used for the synthetic weekday.
    monotonic : callable, optional
        Seconds clock for the refresh countdown.
    """

    def __init__(
        self,
        config: FleetConfig,
        data_source: FleetDataSource,
        positions: PositionFetcher,
        *,
        view: MapView | None = None,
        on_error: Callable[[str], None] | None = None,
        on_update: Callable[[list[VehicleListItem]], None] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._source = data_source
        self._positions = positions
        self._view = view
        self._on_error = on_error
        self._on_update = on_update
        self._clock = clock
        self._monotonic = monotonic
        self._reconciler = PositionReconciler(config.animation)
        self._loading = False
        self._closed = False
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._last_refresh: float | None = None
        self._vehicles: list[VehicleViewModel] = []
        self._items: list[VehicleListItem] = []

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def app_name(self) -> str:
        return self._config.app_name

    @property
    def vehicles(self) -> list[VehicleViewModel]:
        return list(self._vehicles)

    @property
    def vehicle_list(self) -> list[VehicleListItem]:
        return list(self._items)

    @property
    def loading(self) -> bool:
        return self._loading

    def _report(self, message: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(message)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def load_settings(self) -> None:
        """Apply the refresh interval and app name stored with the fleet data."""
        try:
            settings = await self._source.settings()
        except FleetError:
            _logger.warning("Could not load dashboard settings", exc_info=True)
            return

        changes: dict[str, object] = {}
        interval = safe_float(settings.get(SETTING_REFRESH_INTERVAL))
        if interval is not None and interval > 0:
            changes["refresh_interval"] = interval
        name = safe_str(settings.get(SETTING_APP_NAME))
        if name is not None:
            changes["app_name"] = name
        if changes:
            self._config = dataclasses.replace(self._config, **changes)
            _logger.debug("Applied dashboard settings %s", changes)

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    async def refresh(self) -> list[VehicleViewModel]:
        """Run one poll cycle; a call while one is running returns immediately."""
        if self._loading:
            _logger.debug("Refresh already in progress")
            return list(self._vehicles)
        self._loading = True
        self._last_refresh = self._monotonic()
        try:
            await self._refresh()
        except FleetError as exc:
            _logger.warning("Fleet refresh failed: %s", exc)
            self._report(LOAD_FAILED_MESSAGE)
        finally:
            self._loading = False
        return list(self._vehicles)

    async def _load_waypoints(self, route: RouteRecord | None, day: int) -> list[Waypoint]:
        if route is None or not route.is_day_active(day):
            return []
        return waypoints_for_day(await self._source.waypoints(route.id, day), day)

    async def _fetch_positions(self, request: PositionsRequest) -> dict[str, VehiclePosition]:
        try:
            response = await self._positions.fetch_positions(request)
        except FleetError as exc:
            _logger.warning("Position fetch failed: %s", exc)
            self._report(POSITIONS_FAILED_MESSAGE)
            return {}
        return response.by_vehicle()

    async def _refresh(self) -> None:
        now = self._clock()
        day = synthetic_weekday(now)

        records = await self._source.active_vehicles()
        if not records:
            self._publish([], [], {})
            return

        ids = [record.id for record in records]
        routes: dict[str, RouteRecord] = {}
        for route in await self._source.active_routes(ids):
            routes.setdefault(route.vehicle_id, route)
        states = {state.vehicle_id: state for state in await self._source.simulation_states(ids)}

        loaded = await asyncio.gather(*(self._load_waypoints(routes.get(vehicle_id), day) for vehicle_id in ids))
        waypoints = dict(zip(ids, loaded, strict=True))

        request = PositionsRequest(
            timestamp=anchor_to_week(now),
            day_of_week=day,
            vehicles=[
                VehicleRouteRequest(
                    vehicle_id=vehicle_id,
                    waypoints=[WaypointPayload.from_waypoint(w) for w in waypoints[vehicle_id]],
                    is_day_active=vehicle_id in routes and routes[vehicle_id].is_day_active(day),
                )
                for vehicle_id in ids
            ],
        )
        positions = await self._fetch_positions(request)

        if self._view is not None:
            self._reconciler.observe(self._view.simulated_positions())
        self._reconciler.retain(ids)

        labels = {vehicle_id: route.route_name for vehicle_id, route in routes.items() if route.route_name}
        models: list[VehicleViewModel] = []
        for record in records:
            model = self._reconciler.reconcile(
                record,
                waypoints=waypoints[record.id],
                position=positions.get(record.id),
                state=states.get(record.id),
                route_label=labels.get(record.id),
            )
            if model is not None:
                models.append(model)

        _logger.debug("Refreshed %d vehicles (%d renderable)", len(records), len(models))
        self._publish(records, models, labels)

    def _publish(
        self,
        records: Sequence[VehicleRecord],
        models: list[VehicleViewModel],
        labels: Mapping[str, str],
    ) -> None:
        self._vehicles = models
        self._items = build_vehicle_list(records, {model.id: model for model in models}, labels)
        if self._view is not None:
            self._view.update(models)
        if self._on_update is not None:
            self._on_update(list(self._items))

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def seconds_to_next(self) -> int:
        """Whole seconds until the next automatic refresh."""
        total = self._config.refresh_minutes * 60
        if self._last_refresh is None:
            return total
        elapsed = math.floor(self._monotonic() - self._last_refresh)
        return max(total - elapsed, 0)

    def progress_percent(self) -> int:
        """How far through the current refresh period we are, 0–100."""
        total = self._config.refresh_minutes * 60
        if total == 0:
            return 0
        done = total - self.seconds_to_next()
        return max(0, min(100, round(done / total * 100)))

    def request_refresh(self) -> None:
        """Refresh now and restart the countdown."""
        self._wake.set()

    async def run(self) -> None:
        """Load settings, then refresh on the configured interval until closed."""
        await self.load_settings()
        while not self._closed:
            await self.refresh()
            self._wake.clear()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self._config.refresh_seconds)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def close(self) -> None:
        """Stop the refresh loop."""
        self._closed = True
        self._wake.set()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
