"""Marker synchronization.

Reconciles the vehicle list of a poll against the markers drawn on a
:class:`MapSurface`, and owns the camera actions (bounds fit, focus).
The map SDK is reached only through the two protocols below.
"""

from __future__ import annotations

import functools
import html
import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from fleetmotion.config import AnimationTuning
from fleetmotion.geometry import LatLng
from fleetmotion.models.vehicle import VehicleStatus, VehicleViewModel
from fleetmotion.state import ViewState

if TYPE_CHECKING:
    from fleetmotion.scheduler import AnimationScheduler

_logger = logging.getLogger(__name__)

STATUS_MARKER_COLORS: dict[VehicleStatus, str] = {
    VehicleStatus.MOVING: "#7ee600",
    VehicleStatus.PARKED: "#f59e0b",
    VehicleStatus.INACTIVE: "#6b7280",
}

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")


class Marker(Protocol):
    """A point marker on the map."""

    @property
    def position(self) -> LatLng: ...

    def set_position(self, position: LatLng) -> None: ...

    def set_icon(self, color: str) -> None: ...

    def remove(self) -> None: ...

    def on_click(self, callback: Callable[[], None]) -> None: ...


class MapSurface(Protocol):
    """The camera and marker factory of a map widget."""

    @property
    def zoom(self) -> float: ...

    def create_marker(self, vehicle_id: str, position: LatLng, *, title: str, color: str) -> Marker: ...

    def open_popup(self, marker: Marker, content: str) -> None: ...

    def pan_to(self, position: LatLng) -> None: ...

    def set_zoom(self, zoom: float) -> None: ...

    def fit_bounds(self, points: Sequence[LatLng], *, padding: int) -> None: ...


def marker_color(vehicle: VehicleViewModel) -> str:
    """The vehicle's own colour when it is a valid hex code, else its status colour."""
    hint = (vehicle.color_hint or "").strip()
    if _HEX_COLOR.match(hint):
        return hint
    return STATUS_MARKER_COLORS[vehicle.status]


def _format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "—"
    return value.strftime("%Y-%m-%d %H:%M:%S")


def render_popup(vehicle: VehicleViewModel) -> str:
    """HTML details card shown when a marker is clicked."""
    rows: list[tuple[str, str]] = []
    if vehicle.vehicle_number:
        rows.append(("Number", vehicle.vehicle_number))
    if vehicle.vehicle_type:
        rows.append(("Type", vehicle.vehicle_type))
    rows.append(("Status", vehicle.status.value.capitalize()))
    rows.append(("Position", f"{vehicle.lat:.5f}, {vehicle.lng:.5f}"))
    if vehicle.speed_kmh is not None:
        rows.append(("Speed", f"{vehicle.speed_kmh:.0f} km/h"))
    if vehicle.eta_next_minutes is not None:
        rows.append(("Next stop", f"{vehicle.eta_next_minutes:.0f} min"))
    rows.append(("Updated", _format_timestamp(vehicle.last_updated)))

    body = "".join(
        f"<div><strong>{html.escape(label)}:</strong> {html.escape(value)}</div>" for label, value in rows
    )
    return f'<div class="vehicle-popup"><h3>{html.escape(vehicle.name)}</h3>{body}</div>'


class MarkerSynchronizer:
    """Keeps one marker per vehicle id in step with the latest poll."""

    def __init__(
        self,
        state: ViewState,
        surface: MapSurface,
        scheduler: AnimationScheduler,
        tuning: AnimationTuning | None = None,
    ) -> None:
        self._state = state
        self._surface = surface
        self._scheduler = scheduler
        self._tuning = tuning or AnimationTuning()
        self._vehicles: dict[str, VehicleViewModel] = {}
        self._fitted = False
        self._last_focus: tuple[str, object] | None = None

    @property
    def fitted(self) -> bool:
        return self._fitted

    def sync(self, vehicles: Sequence[VehicleViewModel], now: float) -> None:
        """Create, update and remove markers to match *vehicles*."""
        incoming = {vehicle.id: vehicle for vehicle in vehicles}

        for vehicle_id in [v for v in self._state.markers if v not in incoming]:
            self._state.markers[vehicle_id].remove()
            self._vehicles.pop(vehicle_id, None)
            self._scheduler.forget(vehicle_id)
            _logger.debug("Removed marker for vehicle %s", vehicle_id)

        for vehicle in incoming.values():
            color = marker_color(vehicle)
            marker = self._state.markers.get(vehicle.id)
            if marker is None:
                marker = self._surface.create_marker(vehicle.id, vehicle.position, title=vehicle.name, color=color)
                marker.on_click(functools.partial(self._open_details, vehicle.id))
                self._state.markers[vehicle.id] = marker
                self._state.marker_colors[vehicle.id] = color
                _logger.debug("Created marker for vehicle %s", vehicle.id)
            elif self._state.marker_colors.get(vehicle.id) != color:
                marker.set_icon(color)
                self._state.marker_colors[vehicle.id] = color
            self._vehicles[vehicle.id] = vehicle
            self._scheduler.apply(vehicle, marker, now)

        if not self._fitted and self._state.markers:
            self._fit()
            self._fitted = True

    def fit_to_vehicles(self) -> bool:
        """Fit the camera to every marker; ``False`` when there are none."""
        if not self._state.markers:
            return False
        self._fit()
        return True

    def _fit(self) -> None:
        points = [marker.position for marker in self._state.markers.values()]
        self._surface.fit_bounds(points, padding=self._tuning.fit_padding_px)

    def focus(self, vehicle_id: str, requested_at: object) -> bool:
        """Pan to *vehicle_id*, zooming in to the focus minimum if needed.

        *requested_at* tells repeated requests for the same vehicle apart;
        a request identical to the previous one is ignored.
        """
        request = (vehicle_id, requested_at)
        if request == self._last_focus:
            return False

        position = self._state.current_position(vehicle_id)
        if vehicle_id not in self._state.markers or position is None:
            return False
        self._last_focus = request
        self._surface.pan_to(position)
        if self._surface.zoom < self._tuning.focus_min_zoom:
            self._surface.set_zoom(self._tuning.focus_min_zoom)
        return True

    def _open_details(self, vehicle_id: str) -> None:
        marker = self._state.markers.get(vehicle_id)
        vehicle = self._vehicles.get(vehicle_id)
        if marker is None or vehicle is None:
            return
        self._surface.open_popup(marker, render_popup(vehicle))

    def clear(self) -> None:
        for marker in self._state.markers.values():
            marker.remove()
        self._vehicles.clear()
        self._fitted = False
        self._last_focus = None
