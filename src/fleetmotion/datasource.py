"""Fleet data source: vehicles, routes, waypoints and last simulation state."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

import aiohttp

from fleetmotion._api import fleet_data as _fleet_api
from fleetmotion._transport import JsonTransport, Transport
from fleetmotion.config import FleetConfig
from fleetmotion.exceptions import FleetError
from fleetmotion.models.fleet import RouteRecord, SimulationState, VehicleRecord, Waypoint

_logger = logging.getLogger(__name__)

SETTING_REFRESH_INTERVAL = "map_refresh_interval_sec"
SETTING_APP_NAME = "app_name"


class FleetDataSource(Protocol):
    """Where the dashboard reads fleet rows from."""

    async def active_vehicles(self) -> list[VehicleRecord]: ...

    async def active_routes(self, vehicle_ids: Iterable[str]) -> list[RouteRecord]: ...

    async def waypoints(self, route_id: str, day_of_week: int) -> list[Waypoint]: ...

    async def simulation_states(self, vehicle_ids: Iterable[str]) -> list[SimulationState]: ...

    async def settings(self) -> dict[str, str]: ...


class RestFleetDataSource:
    """:class:`FleetDataSource` backed by a PostgREST-style API.

    Sends the configured API key both as ``apikey`` and as a bearer token.
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport

    async def __aenter__(self) -> RestFleetDataSource:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            headers: dict[str, str] = {}
            if self._config.data_api_key:
                headers["apikey"] = self._config.data_api_key
                headers["authorization"] = f"Bearer {self._config.data_api_key}"
            self._transport = JsonTransport(
                self._config.data_base_url,
                self._http_session,
                timeout=self._config.request_timeout,
                default_headers=headers,
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise FleetError("Data source not initialized. Use 'async with RestFleetDataSource(...) as source:'")
        return self._transport

    async def active_vehicles(self) -> list[VehicleRecord]:
        return await _fleet_api.fetch_active_vehicles(self._require_transport())

    async def active_routes(self, vehicle_ids: Iterable[str]) -> list[RouteRecord]:
        return await _fleet_api.fetch_active_routes(self._require_transport(), vehicle_ids)

    async def waypoints(self, route_id: str, day_of_week: int) -> list[Waypoint]:
        return await _fleet_api.fetch_waypoints(self._require_transport(), route_id, day_of_week)

    async def simulation_states(self, vehicle_ids: Iterable[str]) -> list[SimulationState]:
        return await _fleet_api.fetch_simulation_states(self._require_transport(), vehicle_ids)

    async def settings(self) -> dict[str, str]:
        return await _fleet_api.fetch_settings(
            self._require_transport(),
            (SETTING_REFRESH_INTERVAL, SETTING_APP_NAME),
        )
