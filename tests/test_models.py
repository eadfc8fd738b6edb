from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from fleetmotion.geometry import LatLng
from fleetmotion.models import (
    PositionsRequest,
    PositionsResponse,
    PositionStatus,
    RouteRecord,
    SimulationState,
    VehicleRecord,
    VehicleRouteRequest,
    VehicleViewModel,
    Waypoint,
    WaypointPayload,
    parse_timestamp,
)


def test_parse_timestamp_variants() -> None:
    expected = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
    assert parse_timestamp("2024-01-01T08:00:00Z") == expected
    assert parse_timestamp(int(expected.timestamp())) == expected
    assert parse_timestamp(int(expected.timestamp()) * 1000) == expected
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


def test_positions_response_accepts_list_and_drops_malformed() -> None:
    response = PositionsResponse.model_validate(
        [
            {"vehicle_id": "A", "status": "PARKED", "position": {"latitude": 1, "longitude": 2}},
            {"status": "moving"},
            "garbage",
            {"vehicle_id": 7, "status": "moving"},
        ]
    )
    by_vehicle = response.by_vehicle()
    assert set(by_vehicle) == {"A", "7"}
    assert by_vehicle["A"].status == PositionStatus.PARKED
    assert by_vehicle["A"].point == LatLng(1, 2)
    assert by_vehicle["7"].point is None
    assert by_vehicle["7"].next_target is None


def test_positions_response_drops_entry_with_mistyped_sections() -> None:
    response = PositionsResponse.model_validate(
        [
            {"vehicle_id": "A", "position": [0, 0.002], "movement": "fast"},
            {"vehicle_id": "B", "position": {"latitude": 1, "longitude": 2}},
        ]
    )
    assert list(response.by_vehicle()) == ["B"]


def test_half_coordinates_give_no_point() -> None:
    state = SimulationState.model_validate({"vehicle_id": "A", "current_latitude": 1.5})
    assert state.position is None
    response = PositionsResponse.model_validate([{"vehicle_id": "A", "position": {"lng": 2}}])
    assert response.vehicles[0].point is None


def test_positions_response_wrapped_object() -> None:
    response = PositionsResponse.model_validate({"vehicles": [{"vehicle_id": "A"}]})
    assert response.vehicles[0].status == PositionStatus.UNKNOWN


def test_out_of_range_coordinates_are_absent() -> None:
    response = PositionsResponse.model_validate(
        [{"vehicle_id": "A", "position": {"latitude": 123, "longitude": 2}}]
    )
    assert response.vehicles[0].point is None


def test_vehicle_record_requires_id() -> None:
    with pytest.raises(ValidationError):
        VehicleRecord.model_validate({"id": "  ", "name": "x"})
    record = VehicleRecord.model_validate({"id": 12, "name": "Bus", "color": "", "is_active": "true"})
    assert record.id == "12"
    assert record.color is None
    assert record.is_active


def test_route_weekday_flags() -> None:
    route = RouteRecord.model_validate(
        {"id": "r1", "vehicle_id": "v1", "route_name": "Loop", "monday": True, "saturday": "1"}
    )
    assert route.is_day_active(0)
    assert route.is_day_active(5)
    assert not route.is_day_active(2)
    assert not route.is_day_active(9)


def test_waypoint_rejects_invalid_latitude() -> None:
    with pytest.raises(ValidationError):
        Waypoint.model_validate({"sequence_number": 1, "latitude": 95, "longitude": 0})


def test_simulation_state_column_names() -> None:
    state = SimulationState.model_validate(
        {
            "vehicle_id": "v1",
            "current_latitude": 1.5,
            "current_longitude": 2.5,
            "current_speed": "35",
            "simulation_active": "true",
            "is_parked": None,
        }
    )
    assert state.position == LatLng(1.5, 2.5)
    assert state.speed_kmh == 35
    assert state.simulation_active is True
    assert state.is_parked is None


def test_positions_request_serialises_waypoints() -> None:
    waypoint = Waypoint.model_validate(
        {
            "sequence_number": 1,
            "latitude": 1,
            "longitude": 2,
            "timestamp": "2024-01-01T08:00:00Z",
            "day_of_week": 0,
        }
    )
    request = PositionsRequest(
        timestamp=datetime(2024, 1, 1, 9, tzinfo=UTC),
        day_of_week=0,
        vehicles=[
            VehicleRouteRequest(
                vehicle_id="v1",
                waypoints=[WaypointPayload.from_waypoint(waypoint)],
                is_day_active=True,
            )
        ],
    )
    payload = request.model_dump(mode="json")

    assert payload["day_of_week"] == 0
    vehicle = payload["vehicles"][0]
    assert vehicle["is_day_active"] is True
    assert vehicle["waypoints"][0]["sequence_number"] == 1
    assert vehicle["waypoints"][0]["timestamp"].startswith("2024-01-01T08:00:00")


def test_request_models_forbid_extra_fields() -> None:
    with pytest.raises(ValidationError):
        VehicleRouteRequest(vehicle_id="v1", colour="red")  # type: ignore[call-arg]


def test_view_model_rejects_non_finite_coordinates() -> None:
    with pytest.raises(ValidationError):
        VehicleViewModel(id="v", name="v", status="moving", lat=float("nan"), lng=0)  # type: ignore[arg-type]
