from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest
from conftest import FakeRouting

from fleetmotion.config import FleetConfig
from fleetmotion.exceptions import FleetTransportError
from fleetmotion.geometry import LatLng
from fleetmotion.road_paths import OsrmRouting, RoadPath, RoadPathResolver, RoutingFailure, path_key

A = LatLng(52.370001, 4.890001)
B = LatLng(52.380002, 4.910002)


@pytest.mark.asyncio
async def test_resolver_caches_successful_paths(routing: FakeRouting) -> None:
    routing.paths[(A, B)] = [A, LatLng(52.375, 4.9), B]
    resolver = RoadPathResolver(routing)

    first = await resolver.resolve(A, B)
    second = await resolver.resolve(A, B)

    assert first == [A, LatLng(52.375, 4.9), B]
    assert second == first
    assert len(routing.calls) == 1
    assert resolver.cached(A, B) is not None


@pytest.mark.asyncio
async def test_cache_key_collapses_floating_point_noise(routing: FakeRouting) -> None:
    routing.paths[(A, B)] = [A, B]
    resolver = RoadPathResolver(routing, precision=6)
    await resolver.resolve(A, B)

    noisy_a = LatLng(A.lat + 1e-9, A.lng - 1e-9)
    assert path_key(noisy_a, B) == path_key(A, B)
    assert await resolver.resolve(noisy_a, B) == [A, B]
    assert len(routing.calls) == 1


@pytest.mark.asyncio
async def test_failure_returns_none_and_is_retried(routing: FakeRouting) -> None:
    routing.failure = RoutingFailure("disabled", "API not enabled")
    resolver = RoadPathResolver(routing)

    assert await resolver.resolve(A, B) is None

    routing.failure = None
    routing.paths[(A, B)] = [A, B]
    assert await resolver.resolve(A, B) == [A, B]
    assert len(routing.calls) == 2


@pytest.mark.asyncio
async def test_capability_exception_does_not_escape(routing: FakeRouting) -> None:
    routing.error = RuntimeError("boom")
    resolver = RoadPathResolver(routing)

    assert await resolver.resolve(A, B) is None
    assert resolver.cache == {}


@dataclass
class _Transport:
    body: Any = None
    error: FleetTransportError | None = None
    requests: list[tuple[str, dict[str, str]]] = field(default_factory=list)

    async def get_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        self.requests.append((endpoint, dict(params or {})))
        if self.error is not None:
            raise self.error
        return self.body

    async def post_json(self, endpoint: str, payload: Any, *, headers: Mapping[str, str] | None = None) -> Any:
        raise AssertionError("not used")


@pytest.mark.asyncio
async def test_osrm_parses_geojson_geometry() -> None:
    transport = _Transport(
        body={
            "code": "Ok",
            "routes": [{"geometry": {"type": "LineString", "coordinates": [[4.89, 52.37], [4.9, 52.375], [4.91, 52.38]]}}],
        }
    )
    result = await OsrmRouting(transport).route(LatLng(52.37, 4.89), LatLng(52.38, 4.91))

    assert isinstance(result, RoadPath)
    assert result.points == (LatLng(52.37, 4.89), LatLng(52.375, 4.9), LatLng(52.38, 4.91))
    endpoint, params = transport.requests[0]
    assert endpoint == "/route/v1/driving/4.890000,52.370000;4.910000,52.380000"
    assert params == {"overview": "full", "geometries": "geojson"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "reason"),
    [(429, "quota"), (403, "disabled"), (500, "transport"), (None, "transport")],
)
async def test_osrm_maps_http_errors(status_code: int | None, reason: str) -> None:
    transport = _Transport(error=FleetTransportError("failed", status_code=status_code, endpoint="/route"))
    result = await OsrmRouting(transport).route(A, B)
    assert isinstance(result, RoutingFailure)
    assert result.reason == reason


@pytest.mark.asyncio
async def test_osrm_no_route() -> None:
    transport = _Transport(body={"code": "NoRoute", "message": "Impossible route"})
    result = await OsrmRouting(transport).route(A, B)
    assert result == RoutingFailure("no_route", "NoRoute")


@pytest.mark.asyncio
async def test_osrm_from_config_uses_routing_settings() -> None:
    config = FleetConfig(routing_base_url="http://osrm.test/", routing_profile="cycling")
    async with aiohttp.ClientSession() as session:
        routing = OsrmRouting.from_config(config, session)
    assert routing._profile == "cycling"
    assert routing._transport.base_url == "http://osrm.test"
