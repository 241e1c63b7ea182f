"""
TrailMemo Backend — Geometry Unit Tests
=========================================

What:  haversine_distance and bounding_box.
Why:   Nearby search correctness rests on two promises: distances are
       exact (0 for the same point, symmetric) and the SQL pre-filter box
       never drops a point that is inside the radius.

Test Strategy:
    ✅ Identity, symmetry and a known meridian distance
    ✅ Points on the circle are inside the box (several bearings)
    ✅ Longitude bounds dropped at the poles and across the antimeridian
    ✅ Distances rounded to centimeters with halves going up
"""

import math

import pytest

from trailmemo.services.geo import (
    EARTH_RADIUS_METERS,
    bounding_box,
    haversine_distance,
    round_to_centimeters,
)


def destination(lat: float, lon: float, bearing_deg: float, distance_m: float):
    """Point reached from (lat, lon) along a great circle."""
    angular = distance_m / EARTH_RADIUS_METERS
    theta = math.radians(bearing_deg)
    phi1 = math.radians(lat)
    lam1 = math.radians(lon)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(angular)
        + math.cos(phi1) * math.sin(angular) * math.cos(theta)
    )
    lam2 = lam1 + math.atan2(
        math.sin(theta) * math.sin(angular) * math.cos(phi1),
        math.cos(angular) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), (math.degrees(lam2) + 540) % 360 - 180


class TestHaversine:

    def test_same_point_is_zero(self):
        assert haversine_distance(37.7749, -122.4194, 37.7749, -122.4194) == 0.0

    def test_symmetric(self):
        a = haversine_distance(44.4280, -110.5885, 36.1069, -112.1129)
        b = haversine_distance(36.1069, -112.1129, 44.4280, -110.5885)
        assert a == pytest.approx(b, abs=1e-6)

    def test_one_degree_of_latitude(self):
        """One degree along a meridian is 2πR/360 ≈ 111194.93 m."""
        expected = 2 * math.pi * EARTH_RADIUS_METERS / 360
        assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, abs=0.01)

    def test_antipodal_points(self):
        assert haversine_distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(
            math.pi * EARTH_RADIUS_METERS, rel=1e-9
        )

    def test_short_distance_magnitude(self):
        """~500 m north of a point measures ~500 m."""
        lat, lon = destination(37.7749, -122.4194, 0, 500)
        assert haversine_distance(37.7749, -122.4194, lat, lon) == pytest.approx(500, abs=0.01)


class TestBoundingBox:

    @pytest.mark.parametrize("center", [(37.7749, -122.4194), (0.0, 0.0), (-45.0, 170.0), (70.0, 20.0)])
    def test_circle_points_are_inside(self, center):
        lat, lon = center
        radius = 5000.0
        box = bounding_box(lat, lon, radius)
        for bearing in range(0, 360, 15):
            p_lat, p_lon = destination(lat, lon, bearing, radius)
            assert box.contains(p_lat, p_lon), f"bearing {bearing} fell outside the box"

    def test_center_is_inside(self):
        box = bounding_box(10.0, 10.0, 100)
        assert box.contains(10.0, 10.0)

    def test_far_point_is_outside(self):
        box = bounding_box(10.0, 10.0, 1000)
        assert not box.contains(10.1, 10.0)
        assert not box.contains(10.0, 10.1)

    def test_zero_radius_still_contains_center(self):
        box = bounding_box(51.5, -0.12, 0)
        assert box.contains(51.5, -0.12)

    def test_pole_drops_longitude_bounds(self):
        box = bounding_box(89.99, 0.0, 5000)
        assert box.min_lon is None and box.max_lon is None
        assert box.max_lat == 90.0
        assert box.contains(89.995, 179.0)

    def test_antimeridian_drops_longitude_bounds(self):
        box = bounding_box(0.0, 179.999, 1000)
        assert box.min_lon is None and box.max_lon is None
        assert box.contains(0.0, -179.999)

    def test_longitude_bounds_present_elsewhere(self):
        box = bounding_box(37.7749, -122.4194, 1000)
        assert box.min_lon is not None and box.max_lon is not None
        assert box.min_lon < -122.4194 < box.max_lon


class TestRoundToCentimeters:

    def test_halves_round_up(self):
        # 0.125 is exact in binary; round(0.125, 2) gives 0.12.
        assert round_to_centimeters(0.125) == 0.13
        assert round_to_centimeters(0.025) == pytest.approx(0.03)

    @pytest.mark.parametrize("meters, expected", [(0.0, 0.0), (55.5949, 55.59), (1234.5678, 1234.57)])
    def test_ordinary_values(self, meters, expected):
        assert round_to_centimeters(meters) == pytest.approx(expected)
