"""
TrailMemo Backend — Great-Circle Geometry
===========================================

What:  Haversine distance and the search bounding box for nearby queries.
Who:   MemoStore.get_nearby().

Nearby Search Strategy:
    1. bounding_box() turns (lat, lon, radius) into a lat/lon rectangle
       that contains every point within the radius. The rectangle is a
       plain range predicate, so idx_memos_location can serve it.
    2. Candidates inside the box are measured with haversine_distance()
       in-process and anything beyond the radius is discarded.

    The box is only a pre-filter. It may admit points outside the circle
    (the corners) but never excludes a point inside it.
"""

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_METERS = 6_371_000.0

# Widens the box slightly so float rounding at the boundary never drops a
# point sitting exactly on the radius.
_BOX_EPSILON_DEGREES = 1e-9


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points, in meters.

    Inputs are degrees and are not range-checked. The result is symmetric
    and exactly 0.0 for identical points.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def round_to_centimeters(meters: float) -> float:
    """Round a non-negative distance to 0.01 m, halves away from zero (not round())."""
    return math.floor(meters * 100 + 0.5) / 100


@dataclass(frozen=True)
class BoundingBox:
    """
    Lat/lon rectangle around a search circle.

    min_lon/max_lon are None when the circle reaches a pole or crosses the
    antimeridian; callers then filter on latitude only.
    """

    min_lat: float
    max_lat: float
    min_lon: Optional[float]
    max_lon: Optional[float]

    def contains(self, lat: float, lon: float) -> bool:
        if not self.min_lat <= lat <= self.max_lat:
            return False
        if self.min_lon is None or self.max_lon is None:
            return True
        return self.min_lon <= lon <= self.max_lon


def bounding_box(lat: float, lon: float, radius_meters: float) -> BoundingBox:
    """
    Smallest lat/lon rectangle enclosing a circle of `radius_meters`.

    Uses the angular radius r = d / R. Latitude bounds are lat ± r. The
    longitude half-width is asin(sin r / cos lat) (exact for the widest
    point of the circle, which is not on the centre's parallel).
    """
    angular = max(radius_meters, 0.0) / EARTH_RADIUS_METERS
    lat_rad = math.radians(lat)

    min_lat_rad = lat_rad - angular
    max_lat_rad = lat_rad + angular

    min_lat = math.degrees(min_lat_rad) - _BOX_EPSILON_DEGREES
    max_lat = math.degrees(max_lat_rad) + _BOX_EPSILON_DEGREES

    # Circle touches a pole: every longitude is reachable.
    if min_lat_rad <= -math.pi / 2 or max_lat_rad >= math.pi / 2:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)

    delta_lon = math.degrees(math.asin(min(1.0, math.sin(angular) / math.cos(lat_rad))))
    min_lon = lon - delta_lon - _BOX_EPSILON_DEGREES
    max_lon = lon + delta_lon + _BOX_EPSILON_DEGREES

    # Crosses the antimeridian: a single range cannot express the box.
    if min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)

    return BoundingBox(min_lat, max_lat, min_lon, max_lon)
