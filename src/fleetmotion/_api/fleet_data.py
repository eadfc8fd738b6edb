"""PostgREST queries for fleet rows.

Tables:
  - vehicles
  - routes
  - waypoints
  - vehicle_simulation_state
  - system_settings
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import ValidationError

from fleetmotion._transport import Transport
from fleetmotion.exceptions import FleetDataError
from fleetmotion.models._base import FleetBaseModel
from fleetmotion.models.fleet import RouteRecord, SimulationState, VehicleRecord, Waypoint

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=FleetBaseModel)


def in_filter(values: Iterable[str]) -> str:
    """PostgREST ``in.(...)`` filter with quoted values."""
    quoted = ",".join('"' + str(v).replace('"', '""') + '"' for v in values)
    return f"in.({quoted})"


async def select_rows(
    transport: Transport,
    table: str,
    params: Mapping[str, str],
) -> list[dict[str, Any]]:
    """GET ``/rest/v1/{table}`` and return the row list."""
    endpoint = f"/rest/v1/{table}"
    body = await transport.get_json(endpoint, params=params)
    if body is None:
        return []
    if not isinstance(body, list):
        message = body.get("message", "") if isinstance(body, dict) else type(body).__name__
        raise FleetDataError(
            f"{table} query failed: {message}",
            code=str(body.get("code", "")) if isinstance(body, dict) else "invalid_body",
            endpoint=endpoint,
        )
    return [row for row in body if isinstance(row, dict)]


def parse_rows(model: type[M], rows: Iterable[dict[str, Any]], table: str) -> list[M]:
    """Validate *rows*, skipping (and logging) the ones that do not parse."""
    parsed: list[M] = []
    for row in rows:
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as exc:
            _logger.debug("Skipping invalid %s row: %s", table, exc.errors(include_url=False))
    return parsed


async def fetch_active_vehicles(transport: Transport) -> list[VehicleRecord]:
    rows = await select_rows(
        transport,
        "vehicles",
        {"select": "id,name,color,vehicle_number,vehicle_type,is_active", "is_active": "eq.true"},
    )
    return parse_rows(VehicleRecord, rows, "vehicles")


async def fetch_active_routes(transport: Transport, vehicle_ids: Iterable[str]) -> list[RouteRecord]:
    ids = list(vehicle_ids)
    if not ids:
        return []
    rows = await select_rows(
        transport,
        "routes",
        {"select": "*", "vehicle_id": in_filter(ids), "is_active": "eq.true"},
    )
    return parse_rows(RouteRecord, rows, "routes")


async def fetch_waypoints(transport: Transport, route_id: str, day_of_week: int) -> list[Waypoint]:
    rows = await select_rows(
        transport,
        "waypoints",
        {
            "select": "sequence_number,latitude,longitude,timestamp,day_of_week,is_parking,route_id",
            "route_id": f"eq.{route_id}",
            "day_of_week": f"eq.{day_of_week}",
            "order": "sequence_number.asc",
        },
    )
    return parse_rows(Waypoint, rows, "waypoints")


async def fetch_simulation_states(transport: Transport, vehicle_ids: Iterable[str]) -> list[SimulationState]:
    ids = list(vehicle_ids)
    if not ids:
        return []
    rows = await select_rows(
        transport,
        "vehicle_simulation_state",
        {
            "select": "vehicle_id,current_latitude,current_longitude,current_speed,"
            "current_bearing,simulation_active,is_parked,updated_at",
            "vehicle_id": in_filter(ids),
        },
    )
    return parse_rows(SimulationState, rows, "vehicle_simulation_state")


async def fetch_settings(transport: Transport, keys: Iterable[str]) -> dict[str, str]:
    rows = await select_rows(
        transport,
        "system_settings",
        {"select": "setting_key,setting_value", "setting_key": in_filter(keys)},
    )
    settings: dict[str, str] = {}
    for row in rows:
        key = row.get("setting_key")
        value = row.get("setting_value")
        if isinstance(key, str) and value is not None:
            settings[key] = str(value)
    return settings
