"""Geospatial utilities used for distance calculations."""

from __future__ import annotations

from dataclasses import dataclass
from math import asin, atan2, cos, degrees, radians, sin, sqrt

EARTH_RADIUS_KM = 6371.0

# Widens the pre-filter box so float error never drops a point on the boundary.
_BOX_MARGIN = 1e-9


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate great-circle distance between two lat/lng points in kilometers.

    Args:
        lat1: Latitude of the first point.
        lng1: Longitude of the first point.
        lat2: Latitude of the second point.
        lng2: Longitude of the second point.

    Returns:
        Distance in kilometers, unrounded.

    Notes:
        Callers round for display (one decimal place). Threshold checks such
        as the search radius compare against the unrounded value.
    """

    lat1_rad = radians(lat1)
    lng1_rad = radians(lng1)
    lat2_rad = radians(lat2)
    lng2_rad = radians(lng2)

    delta_lat = lat2_rad - lat1_rad
    delta_lng = lng2_rad - lng1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(
        delta_lng / 2
    ) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two lat/lng points in meters."""

    return haversine_km(lat1, lng1, lat2, lng2) * 1000.0


@dataclass(frozen=True)
class BoundingBox:
    """Lat/lng window that contains every point within a radius of a center.

    ``delta_lng`` is ``None`` when the circle covers a pole, in which case
    every longitude is inside the box.
    """

    center_lng: float
    min_lat: float
    max_lat: float
    delta_lng: float | None

    def contains(self, lat: float, lng: float) -> bool:
        if lat < self.min_lat or lat > self.max_lat:
            return False
        if self.delta_lng is None:
            return True
        # Wrapped difference so boxes crossing the antimeridian still work.
        diff = abs((lng - self.center_lng + 180.0) % 360.0 - 180.0)
        return diff <= self.delta_lng


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """Compute the exact spherical bounding box of a search circle.

    Any point whose Haversine distance from (lat, lng) is within
    ``radius_km`` is inside the returned box, so it can be used to discard
    far candidates before the precise distance check without changing the
    result set.
    """

    angular = radius_km / EARTH_RADIUS_KM * (1 + _BOX_MARGIN)
    lat_rad = radians(lat)
    min_lat = lat_rad - angular
    max_lat = lat_rad + angular

    if min_lat <= -radians(90) or max_lat >= radians(90):
        return BoundingBox(
            center_lng=lng,
            min_lat=max(degrees(min_lat), -90.0),
            max_lat=min(degrees(max_lat), 90.0),
            delta_lng=None,
        )

    ratio = sin(angular) / cos(lat_rad)
    if ratio >= 1:
        delta_lng = None
    else:
        delta_lng = degrees(asin(ratio)) + _BOX_MARGIN

    return BoundingBox(
        center_lng=lng,
        min_lat=degrees(min_lat),
        max_lat=degrees(max_lat),
        delta_lng=delta_lng,
    )
