"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Any

from shapely.geometry import Polygon, mapping

from ..models.domain import GeoPoint

EARTH_RADIUS_M = 6371e3
METERS_PER_MILE = 1609.34
KM_PER_DEGREE_LAT = 110.574
KM_PER_DEGREE_LON_EQUATOR = 111.320

MIN_RADIUS_ZOOM = 6.0
MAX_RADIUS_ZOOM = 13.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """Return True when (lat, lng) is a finite, in-range WGS84 coordinate."""

    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    try:
        lat_value = float(lat)
        lng_value = float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_value) and math.isfinite(lng_value)):
        return False
    return -90.0 <= lat_value <= 90.0 and -180.0 <= lng_value <= 180.0


def approximate_circle(center: GeoPoint, radius_meters: float, segments: int = 64) -> Polygon:
    """Approximate a circle around ``center`` as a closed polygon in (lng, lat) order.

    Uses a local equirectangular projection: the east-west extent is scaled by
    ``cos(latitude)``. Error grows with radius and latitude; the result is meant
    for drawing radius overlays, not for containment tests (use
    :func:`haversine_meters` for those). Not valid near the poles or beyond
    roughly 500 km.
    """

    if segments < 3:
        raise ValueError("segments must be >= 3")

    km = radius_meters / 1000.0
    distance_x = km / (KM_PER_DEGREE_LON_EQUATOR * math.cos(math.radians(center.lat)))
    distance_y = km / KM_PER_DEGREE_LAT

    ring: list[tuple[float, float]] = []
    for i in range(segments):
        theta = (i / segments) * (2 * math.pi)
        ring.append(
            (
                center.lng + distance_x * math.cos(theta),
                center.lat + distance_y * math.sin(theta),
            )
        )
    ring.append(ring[0])
    return Polygon(ring)


def circle_feature(center: GeoPoint, radius_meters: float, segments: int = 64) -> dict:
    """GeoJSON Feature wrapping :func:`approximate_circle`."""

    geometry = mapping(approximate_circle(center, radius_meters, segments))
    return {
        "type": "Feature",
        "properties": {"radius_meters": radius_meters},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[list(point) for point in ring] for ring in geometry["coordinates"]],
        },
    }


def zoom_for_radius(radius_miles: float) -> float:
    """Camera zoom that fits a radius: 5 miles -> 13, doubling the radius zooms out one level."""

    if radius_miles <= 0:
        return MAX_RADIUS_ZOOM
    zoom = MAX_RADIUS_ZOOM - math.log2(radius_miles / 5)
    return max(MIN_RADIUS_ZOOM, min(MAX_RADIUS_ZOOM, zoom))


def meters_per_pixel(latitude: float, zoom: float, tile_size: int = 512) -> float:
    """Ground resolution of a web-mercator map at ``latitude`` and ``zoom``."""

    circumference = 2 * math.pi * 6378137.0
    return circumference * math.cos(math.radians(latitude)) / (tile_size * 2**zoom)
