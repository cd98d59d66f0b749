"""
Unit tests for Haversine distance and the bounding box pre-filter.

The bounding box must never exclude a point that Haversine puts inside the
radius, including near the poles and across the antimeridian.
"""

import pytest

from player_finder.utils.geo import bounding_box, haversine_km, haversine_meters


class TestHaversine:
    """Great-circle distance."""

    def test_identical_points_are_zero(self):
        assert haversine_km(19.4326, -99.1332, 19.4326, -99.1332) == 0.0

    def test_symmetry(self):
        forward = haversine_km(19.4326, -99.1332, 25.6866, -100.3161)
        backward = haversine_km(25.6866, -100.3161, 19.4326, -99.1332)
        assert forward == pytest.approx(backward)

    def test_mexico_city_to_monterrey(self):
        """Known city pair, roughly 709 km apart."""
        distance = haversine_km(19.4326, -99.1332, 25.6866, -100.3161)
        assert distance == pytest.approx(709, abs=5)

    def test_small_offset(self):
        distance = haversine_km(19.0, -99.0, 19.05, -99.02)
        assert distance == pytest.approx(5.9, abs=0.1)

    def test_antipodal_points(self):
        """Half the Earth's circumference."""
        assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(20015.1, abs=1)

    def test_meters_matches_kilometers(self):
        km = haversine_km(19.0, -99.0, 19.1, -99.1)
        assert haversine_meters(19.0, -99.0, 19.1, -99.1) == pytest.approx(km * 1000)


class TestBoundingBox:
    """Pre-filter box around a search circle."""

    @pytest.mark.parametrize(
        "lat,lng,radius",
        [
            (19.0, -99.0, 50),
            (60.0, 10.0, 500),
            (-33.9, 151.2, 100),
            (0.0, 0.0, 1),
        ],
    )
    def test_contains_points_on_the_circle(self, lat, lng, radius):
        """Points sampled just inside the radius are all in the box."""
        box = bounding_box(lat, lng, radius)
        step = radius / 6371.0 * 57.29577951308232 / 20
        for i in range(-40, 41):
            for j in range(-80, 81):
                plat, plng = lat + i * step, lng + j * step
                if -90 <= plat <= 90 and haversine_km(lat, lng, plat, plng) <= radius:
                    assert box.contains(plat, plng), (plat, plng)

    def test_excludes_far_point(self):
        box = bounding_box(19.0, -99.0, 50)
        assert not box.contains(25.6866, -100.3161)

    def test_crosses_antimeridian(self):
        """A circle at 179.9E reaches points at 179.9W."""
        box = bounding_box(0.0, 179.9, 50)
        assert haversine_km(0.0, 179.9, 0.0, -179.9) < 50
        assert box.contains(0.0, -179.9)
        assert not box.contains(0.0, 170.0)

    def test_circle_covering_pole_accepts_any_longitude(self):
        box = bounding_box(89.9, 0.0, 100)
        assert box.delta_lng is None
        assert box.contains(89.8, 180.0)
        assert not box.contains(80.0, 0.0)
