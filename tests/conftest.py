from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from fleetmotion.geometry import LatLng
from fleetmotion.models.vehicle import VehicleStatus, VehicleViewModel, WaypointRef
from fleetmotion.road_paths import RoadPath, RoutingFailure, RoutingResult


@dataclass
class FakeMarker:
    vehicle_id: str
    position: LatLng
    color: str
    history: list[LatLng] = field(default_factory=list)
    removed: bool = False
    click: Callable[[], None] | None = None

    def set_position(self, position: LatLng) -> None:
        self.position = position
        self.history.append(position)

    def set_icon(self, color: str) -> None:
        self.color = color

    def remove(self) -> None:
        self.removed = True

    def on_click(self, callback: Callable[[], None]) -> None:
        self.click = callback


@dataclass
class FakeSurface:
    zoom: float = 10.0
    markers: list[FakeMarker] = field(default_factory=list)
    popups: list[tuple[FakeMarker, str]] = field(default_factory=list)
    pans: list[LatLng] = field(default_factory=list)
    fits: list[list[LatLng]] = field(default_factory=list)

    def create_marker(self, vehicle_id: str, position: LatLng, *, title: str, color: str) -> FakeMarker:
        marker = FakeMarker(vehicle_id=vehicle_id, position=position, color=color)
        self.markers.append(marker)
        return marker

    def open_popup(self, marker: FakeMarker, content: str) -> None:
        self.popups.append((marker, content))

    def pan_to(self, position: LatLng) -> None:
        self.pans.append(position)

    def set_zoom(self, zoom: float) -> None:
        self.zoom = zoom

    def fit_bounds(self, points: Sequence[LatLng], *, padding: int) -> None:
        self.fits.append(list(points))


@dataclass
class FakeRouting:
    """Routing double: returns ``paths[(origin, destination)]`` or a failure."""

    paths: dict[tuple[LatLng, LatLng], list[LatLng]] = field(default_factory=dict)
    failure: RoutingFailure | None = None
    error: Exception | None = None
    calls: list[tuple[LatLng, LatLng]] = field(default_factory=list)

    async def route(self, origin: LatLng, destination: LatLng) -> RoutingResult:
        self.calls.append((origin, destination))
        if self.error is not None:
            raise self.error
        if self.failure is not None:
            return self.failure
        path = self.paths.get((origin, destination))
        if path is None:
            return RoutingFailure("no_route")
        return RoadPath(tuple(path))


@dataclass
class ManualClock:
    now: float = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


def make_vehicle(
    vehicle_id: str = "V1",
    *,
    status: VehicleStatus = VehicleStatus.MOVING,
    lat: float = 0.0,
    lng: float = 0.0,
    waypoints: Sequence[tuple[float, float]] = (),
    **extra: Any,
) -> VehicleViewModel:
    refs = tuple(WaypointRef(lat=a, lng=b, sequence=i + 1) for i, (a, b) in enumerate(waypoints))
    return VehicleViewModel(
        id=vehicle_id,
        name=extra.pop("name", f"Truck {vehicle_id}"),
        status=status,
        lat=lat,
        lng=lng,
        waypoints=refs,
        **extra,
    )


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def routing() -> FakeRouting:
    return FakeRouting()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
