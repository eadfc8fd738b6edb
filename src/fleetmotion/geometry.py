"""Geometry helpers on WGS84 coordinates.

All functions are pure.  Distances use the haversine formula on a sphere
of radius 6 371 km, which is well within 1% of the ellipsoidal distance at
the tens-of-metres to low-kilometre scales a single leg covers.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True, slots=True)
class LatLng:
    """A coordinate in decimal degrees."""

    lat: float
    lng: float

    def is_finite(self) -> bool:
        return math.isfinite(self.lat) and math.isfinite(self.lng)

    def rounded(self, precision: int) -> tuple[float, float]:
        return round(self.lat, precision), round(self.lng, precision)


def distance_meters(a: LatLng, b: LatLng) -> float:
    """Great-circle distance between *a* and *b* in metres."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(x), math.sqrt(1 - x))


def path_length(path: Sequence[LatLng]) -> float:
    """Sum of consecutive segment distances, 0 for fewer than two points."""
    if len(path) < 2:
        return 0.0
    return sum(distance_meters(path[i - 1], path[i]) for i in range(1, len(path)))


def lerp(a: LatLng, b: LatLng, progress: float) -> LatLng:
    """Straight-line interpolation between two coordinates."""
    return LatLng(a.lat + (b.lat - a.lat) * progress, a.lng + (b.lng - a.lng) * progress)


def point_at_fraction(path: Sequence[LatLng], progress: float) -> LatLng:
    """Position at *progress* (0..1) of the polyline's length.

    Walks the segments until the cumulative distance reaches
    ``progress * path_length(path)`` and interpolates inside that segment,
    so a marker follows the road rather than the chord between endpoints.
    """
    if not path:
        return LatLng(0.0, 0.0)
    if progress <= 0:
        return path[0]
    if progress >= 1:
        return path[-1]

    segments = [distance_meters(path[i - 1], path[i]) for i in range(1, len(path))]
    target = sum(segments) * progress

    travelled = 0.0
    for i, segment in enumerate(segments, start=1):
        if travelled + segment >= target:
            within = (target - travelled) / segment if segment > 0 else 0.0
            return lerp(path[i - 1], path[i], within)
        travelled += segment

    return path[-1]


def offset(point: LatLng, dlat: float, dlng: float) -> LatLng:
    return LatLng(point.lat + dlat, point.lng + dlng)


def is_finite_point(lat: float | None, lng: float | None) -> bool:
    return lat is not None and lng is not None and math.isfinite(lat) and math.isfinite(lng)
