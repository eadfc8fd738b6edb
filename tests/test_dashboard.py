from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import pytest
from conftest import FakeRouting, FakeSurface, ManualClock

from fleetmotion.client import PositionServiceClient
from fleetmotion.config import FleetConfig
from fleetmotion.dashboard import (
    LOAD_FAILED_MESSAGE,
    POSITIONS_FAILED_MESSAGE,
    FleetDashboard,
    build_vehicle_list,
)
from fleetmotion.exceptions import FleetDataError, FleetTransportError
from fleetmotion.geometry import LatLng
from fleetmotion.models.fleet import RouteRecord, SimulationState, VehicleRecord, Waypoint
from fleetmotion.models.positions import PositionsRequest, PositionsResponse
from fleetmotion.models.vehicle import VehicleStatus, VehicleViewModel
from fleetmotion.view import MapView

MONDAY_MORNING = datetime(2026, 10, 12, 8, 0, tzinfo=UTC)


@dataclass
class _Source:
    vehicles: list[dict[str, Any]] = field(default_factory=list)
    routes: list[dict[str, Any]] = field(default_factory=list)
    waypoint_rows: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    states: list[dict[str, Any]] = field(default_factory=list)
    settings_rows: dict[str, str] = field(default_factory=dict)
    error: Exception | None = None
    gate: asyncio.Event | None = None
    vehicle_calls: int = 0

    async def active_vehicles(self) -> list[VehicleRecord]:
        self.vehicle_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [VehicleRecord.model_validate(row) for row in self.vehicles]

    async def active_routes(self, vehicle_ids: Iterable[str]) -> list[RouteRecord]:
        return [RouteRecord.model_validate(row) for row in self.routes]

    async def waypoints(self, route_id: str, day_of_week: int) -> list[Waypoint]:
        return [Waypoint.model_validate(row) for row in self.waypoint_rows.get(route_id, [])]

    async def simulation_states(self, vehicle_ids: Iterable[str]) -> list[SimulationState]:
        return [SimulationState.model_validate(row) for row in self.states]

    async def settings(self) -> dict[str, str]:
        return dict(self.settings_rows)


@dataclass
class _Positions:
    body: Any = None
    error: Exception | None = None
    requests: list[PositionsRequest] = field(default_factory=list)

    async def fetch_positions(self, request: PositionsRequest) -> PositionsResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return PositionsResponse.model_validate(self.body or [])


def _fleet() -> _Source:
    return _Source(
        vehicles=[
            {"id": "V1", "name": "Bus 1", "color": "#ff0000"},
            {"id": "V2", "name": "Bus 2"},
            {"id": "V3", "name": "Bus 3"},
        ],
        routes=[
            {"id": "r1", "vehicle_id": "V1", "route_name": "North", "monday": True},
            {"id": "r2", "vehicle_id": "V2", "route_name": "South", "monday": True},
            {"id": "r3", "vehicle_id": "V3", "route_name": "Weekend", "saturday": True},
        ],
        waypoint_rows={
            "r1": [
                {"sequence_number": 1, "latitude": 0, "longitude": 0, "day_of_week": 0},
                {"sequence_number": 2, "latitude": 0, "longitude": 0.01, "day_of_week": 0},
            ],
            "r2": [
                {"sequence_number": 1, "latitude": 1, "longitude": 1, "day_of_week": 0},
                {"sequence_number": 2, "latitude": 1, "longitude": 1.01, "day_of_week": 0},
            ],
        },
    )


def _dashboard(source: _Source, positions: _Positions, **kwargs: Any) -> FleetDashboard:
    return FleetDashboard(FleetConfig(), source, positions, clock=lambda: MONDAY_MORNING, **kwargs)


@pytest.mark.asyncio
async def test_refresh_builds_request_and_view_models() -> None:
    source = _fleet()
    positions = _Positions(
        body=[
            {
                "vehicle_id": "V1",
                "status": "moving",
                "position": {"latitude": 0, "longitude": 0.002},
                "movement": {"speed_kmh": 40},
                "route_progress": {"progress_percent": 130},
            }
        ]
    )
    updates: list[list[Any]] = []
    dashboard = _dashboard(source, positions, on_update=updates.append)

    vehicles = await dashboard.refresh()

    request = positions.requests[0]
    assert request.day_of_week == 0
    assert request.timestamp == datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
    by_id = {v.vehicle_id: v for v in request.vehicles}
    assert by_id["V1"].is_day_active and len(by_id["V1"].waypoints) == 2
    assert not by_id["V3"].is_day_active and by_id["V3"].waypoints == []

    rendered = {v.id: v for v in vehicles}
    assert set(rendered) == {"V1", "V2"}
    assert rendered["V1"].position == LatLng(0, 0.002)
    assert rendered["V1"].authoritative
    # no authoritative data for V2: its first waypoint is used
    assert rendered["V2"].position == LatLng(1, 1)

    items = {item.id: item for item in updates[-1]}
    assert items["V1"].route_label == "North"
    assert items["V1"].status_color == "#2563eb"
    assert items["V1"].progress_percent == 100
    assert items["V3"].status == VehicleStatus.INACTIVE
    assert items["V3"].lat is None


@pytest.mark.asyncio
async def test_position_failure_is_reported_and_degrades() -> None:
    errors: list[str] = []
    positions = _Positions(error=FleetTransportError("HTTP 502", status_code=502, endpoint="/p"))
    dashboard = _dashboard(_fleet(), positions, on_error=errors.append)

    vehicles = await dashboard.refresh()

    assert errors == [POSITIONS_FAILED_MESSAGE]
    assert {v.id for v in vehicles} == {"V1", "V2"}
    assert all(not v.authoritative for v in vehicles)


@pytest.mark.asyncio
async def test_data_failure_keeps_previous_vehicles() -> None:
    errors: list[str] = []
    source = _fleet()
    dashboard = _dashboard(source, _Positions(), on_error=errors.append)
    first = await dashboard.refresh()

    source.error = FleetDataError("relation missing", code="42P01", endpoint="/rest/v1/vehicles")
    second = await dashboard.refresh()

    assert errors == [LOAD_FAILED_MESSAGE]
    assert [v.id for v in second] == [v.id for v in first]
    assert not dashboard.loading


@pytest.mark.asyncio
async def test_refresh_is_single_flight() -> None:
    source = _fleet()
    source.gate = asyncio.Event()
    dashboard = _dashboard(source, _Positions())

    running = asyncio.create_task(dashboard.refresh())
    await asyncio.sleep(0)
    assert dashboard.loading
    assert await dashboard.refresh() == []

    source.gate.set()
    await running
    assert source.vehicle_calls == 1


@pytest.mark.asyncio
async def test_refresh_updates_map_view(clock: ManualClock) -> None:
    surface = FakeSurface()
    view = MapView(surface, FakeRouting(), clock=clock)
    dashboard = _dashboard(_fleet(), _Positions(), view=view)

    await dashboard.refresh()
    assert set(view.state.markers) == {"V1", "V2"}

    source = _fleet()
    source.vehicles = source.vehicles[:1]
    dashboard2 = _dashboard(source, _Positions(), view=view)
    await dashboard2.refresh()
    assert set(view.state.markers) == {"V1"}
    await view.close()


@pytest.mark.asyncio
async def test_empty_fleet_clears_everything() -> None:
    updates: list[list[Any]] = []
    dashboard = _dashboard(_Source(), _Positions(), on_update=updates.append)
    assert await dashboard.refresh() == []
    assert updates == [[]]


@pytest.mark.asyncio
async def test_load_settings_applies_interval_and_name() -> None:
    source = _Source(settings_rows={"map_refresh_interval_sec": "120", "app_name": "Depot"})
    dashboard = _dashboard(source, _Positions())

    await dashboard.load_settings()

    assert dashboard.config.refresh_minutes == 2
    assert dashboard.app_name == "Depot"


@pytest.mark.asyncio
async def test_countdown() -> None:
    now = [1_000.0]
    dashboard = FleetDashboard(
        FleetConfig(refresh_interval=60),
        _fleet(),
        _Positions(),
        clock=lambda: MONDAY_MORNING,
        monotonic=lambda: now[0],
    )
    assert dashboard.seconds_to_next() == 60

    await dashboard.refresh()
    now[0] += 15.7
    assert dashboard.seconds_to_next() == 45
    assert dashboard.progress_percent() == 25

    now[0] += 100
    assert dashboard.seconds_to_next() == 0
    assert dashboard.progress_percent() == 100


@pytest.mark.asyncio
async def test_run_refreshes_on_request_and_stops_on_close() -> None:
    source = _fleet()
    dashboard = _dashboard(source, _Positions())

    dashboard.start()
    for _ in range(10):
        await asyncio.sleep(0)
    assert source.vehicle_calls == 1

    dashboard.request_refresh()
    for _ in range(10):
        await asyncio.sleep(0)
    assert source.vehicle_calls == 2

    await dashboard.close()
    dashboard.request_refresh()
    await asyncio.sleep(0)
    assert source.vehicle_calls == 2


def test_build_vehicle_list_defaults() -> None:
    records = [VehicleRecord.model_validate({"id": "A", "name": "", "color": "#00ff00"})]
    model = VehicleViewModel(
        id="A",
        name="A",
        status=VehicleStatus.PARKED,
        lat=1.23456,
        lng=2.5,
        progress_percent=-4,
        eta_to_next_ms=90_000,
    )

    items = build_vehicle_list(records, {"A": model})

    item = items[0]
    assert item.name == "A"
    assert item.route_label == "—"
    assert item.status_color == "#f59e0b"
    assert item.progress_percent == 0
    assert item.eta_next_minutes == 1.5
    assert item.position_label == "1.2346, 2.5000"


@dataclass
class _PositionTransport:
    body: Any = None

    async def get_json(self, endpoint: str, **kwargs: Any) -> Any:
        raise AssertionError("position service is POST only")

    async def post_json(self, endpoint: str, payload: Any, **kwargs: Any) -> Any:
        return self.body


@pytest.mark.asyncio
async def test_malformed_position_entry_is_dropped_not_fatal() -> None:
    errors: list[str] = []
    transport = _PositionTransport(
        body=[
            {"vehicle_id": "V1", "status": "moving", "position": [0, 0.002], "movement": "fast"},
            {"vehicle_id": "V2", "status": "moving", "position": {"latitude": 1, "longitude": 1.005}},
        ]
    )

    async with PositionServiceClient(FleetConfig(), transport=transport) as client:
        dashboard = _dashboard(_fleet(), client, on_error=errors.append)
        vehicles = await dashboard.refresh()

    assert errors == []
    rendered = {v.id: v for v in vehicles}
    assert not rendered["V1"].authoritative
    assert rendered["V1"].position == LatLng(0, 0)
    assert rendered["V2"].authoritative
    assert rendered["V2"].position == LatLng(1, 1.005)


@pytest.mark.asyncio
async def test_parked_vehicle_without_fix_stays_put_across_polls(clock: ManualClock) -> None:
    source = _Source(
        vehicles=[{"id": "V1", "name": "Bus 1"}],
        routes=[{"id": "r1", "vehicle_id": "V1", "route_name": "North", "monday": True}],
        waypoint_rows={
            "r1": [
                {"sequence_number": 1, "latitude": 0, "longitude": 0, "day_of_week": 0},
                {"sequence_number": 2, "latitude": 0, "longitude": 0.01, "day_of_week": 0},
                {"sequence_number": 3, "latitude": 0, "longitude": 0.02, "day_of_week": 0},
            ]
        },
        states=[{"vehicle_id": "V1", "is_parked": True}],
    )
    view = MapView(FakeSurface(), FakeRouting(), clock=clock)
    dashboard = _dashboard(source, _Positions(), view=view)

    seen: list[tuple[VehicleStatus, LatLng]] = []
    for _ in range(3):
        (vehicle,) = await dashboard.refresh()
        seen.append((vehicle.status, vehicle.position))

    assert seen == [(VehicleStatus.PARKED, LatLng(0, 0))] * 3
    assert view.state.markers["V1"].position == LatLng(0, 0)
    await view.close()
