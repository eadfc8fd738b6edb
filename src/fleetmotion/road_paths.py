"""Road path resolution.

A road path is the polyline a vehicle drives between two coordinates.  The
routing service is allowed to fail (quota, feature disabled, no route);
failure is a value, and the resolver turns it into ``None`` so callers fall
back to a straight segment for that leg.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import aiohttp

from fleetmotion._transport import JsonTransport, Transport
from fleetmotion.config import FleetConfig
from fleetmotion.exceptions import FleetTransportError
from fleetmotion.geometry import LatLng
from fleetmotion.normalize import valid_latitude, valid_longitude

_logger = logging.getLogger(__name__)

PathKey = tuple[float, float, float, float]


@dataclasses.dataclass(frozen=True, slots=True)
class RoadPath:
    """A resolved driving polyline."""

    points: tuple[LatLng, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class RoutingFailure:
    """Why the routing service could not produce a path.

    ``reason`` is one of ``quota``, ``disabled``, ``no_route``,
    ``transport`` or ``invalid``.
    """

    reason: str
    detail: str = ""


RoutingResult = RoadPath | RoutingFailure


class RoutingCapability(Protocol):
    """Anything that can compute a driving route between two points."""

    async def route(self, origin: LatLng, destination: LatLng) -> RoutingResult: ...


def _parse_geojson_line(coordinates: Any) -> tuple[LatLng, ...]:
    points: list[LatLng] = []
    if not isinstance(coordinates, list):
        return ()
    for pair in coordinates:
        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            continue
        lng = valid_longitude(pair[0])
        lat = valid_latitude(pair[1])
        if lat is None or lng is None:
            continue
        points.append(LatLng(lat, lng))
    return tuple(points)


class OsrmRouting:
    """Routing capability backed by an OSRM ``route/v1`` service.

    Parameters
    ----------
    transport : Transport
        Transport bound to the OSRM base URL.
    profile : str
        OSRM profile, ``driving`` by default.
    """

    def __init__(self, transport: Transport, *, profile: str = "driving") -> None:
        self._transport = transport
        self._profile = profile

    @classmethod
    def from_config(cls, config: FleetConfig, session: aiohttp.ClientSession) -> OsrmRouting:
        """Build a routing capability for ``config.routing_base_url`` on *session*."""
        transport = JsonTransport(config.routing_base_url, session, timeout=config.request_timeout)
        return cls(transport, profile=config.routing_profile)

    async def route(self, origin: LatLng, destination: LatLng) -> RoutingResult:
        endpoint = (
            f"/route/v1/{self._profile}/"
            f"{origin.lng:.6f},{origin.lat:.6f};{destination.lng:.6f},{destination.lat:.6f}"
        )
        try:
            body = await self._transport.get_json(
                endpoint,
                params={"overview": "full", "geometries": "geojson"},
            )
        except FleetTransportError as exc:
            if exc.status_code == 429:
                return RoutingFailure("quota", str(exc))
            if exc.status_code == 403:
                return RoutingFailure("disabled", str(exc))
            return RoutingFailure("transport", str(exc))

        if not isinstance(body, dict):
            return RoutingFailure("invalid", "response is not an object")

        code = str(body.get("code", ""))
        if code != "Ok":
            if code in {"NoRoute", "NoSegment"}:
                return RoutingFailure("no_route", code)
            return RoutingFailure("invalid", f"code={code} message={body.get('message', '')}")

        routes = body.get("routes")
        if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
            return RoutingFailure("no_route", "empty routes")
        geometry = routes[0].get("geometry")
        coordinates = geometry.get("coordinates") if isinstance(geometry, dict) else None
        points = _parse_geojson_line(coordinates)
        if len(points) < 2:
            return RoutingFailure("no_route", "geometry has fewer than two points")
        return RoadPath(points)


def path_key(origin: LatLng, destination: LatLng, precision: int = 6) -> PathKey:
    """Cache key for a leg: both endpoints rounded to *precision* decimals."""
    return (*origin.rounded(precision), *destination.rounded(precision))


class RoadPathResolver:
    """Resolve and cache road paths between coordinate pairs.

    Successful resolutions are cached for the lifetime of the resolver and
    never evicted.  Failures are not cached, so a later call for the same
    pair asks the routing service again.
    """

    def __init__(
        self,
        capability: RoutingCapability,
        *,
        precision: int = 6,
        cache: dict[PathKey, tuple[LatLng, ...]] | None = None,
    ) -> None:
        self._capability = capability
        self._precision = precision
        self._cache: dict[PathKey, tuple[LatLng, ...]] = cache if cache is not None else {}

    @property
    def cache(self) -> dict[PathKey, tuple[LatLng, ...]]:
        return self._cache

    def cached(self, origin: LatLng, destination: LatLng) -> Sequence[LatLng] | None:
        return self._cache.get(path_key(origin, destination, self._precision))

    async def resolve(self, origin: LatLng, destination: LatLng) -> list[LatLng] | None:
        """Return the road polyline from *origin* to *destination*, or ``None``.

        Never raises for routing problems: a failure result or an exception
        from the capability is logged at DEBUG and yields ``None``.
        """
        key = path_key(origin, destination, self._precision)
        hit = self._cache.get(key)
        if hit is not None:
            return list(hit)

        try:
            result = await self._capability.route(origin, destination)
        except Exception:
            _logger.debug("Road path lookup raised for %s", key, exc_info=True)
            return None

        if isinstance(result, RoutingFailure):
            _logger.debug("Road path unavailable for %s: %s %s", key, result.reason, result.detail)
            return None

        points = tuple(p for p in result.points if p.is_finite())
        if len(points) < 2:
            return None
        self._cache.setdefault(key, points)
        _logger.debug("Cached road path %s (%d points)", key, len(points))
        return list(points)
