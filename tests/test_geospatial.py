import math

import pytest

from customer_atlas.models.domain import GeoPoint
from customer_atlas.services.geospatial import (
    approximate_circle,
    circle_feature,
    haversine_meters,
    is_valid_coordinate,
    meters_per_pixel,
    miles_to_meters,
    zoom_for_radius,
)


def test_haversine_is_symmetric():
    forward = haversine_meters(40.809, -73.962, 41.5, -74.0)
    backward = haversine_meters(41.5, -74.0, 40.809, -73.962)
    assert forward == pytest.approx(backward)


def test_haversine_known_distance():
    # one degree of latitude is roughly 111.2 km
    assert haversine_meters(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)
    assert haversine_meters(40.0, -74.0, 40.0, -74.0) == 0.0


def test_miles_to_meters():
    assert miles_to_meters(10) == pytest.approx(16_093.4)


@pytest.mark.parametrize(
    "lat, lng",
    [
        (float("nan"), 10.0),
        (10.0, float("inf")),
        (91.0, 0.0),
        (0.0, 200.0),
        (None, 1.0),
        ("abc", 1.0),
        (True, 1.0),
    ],
)
def test_invalid_coordinates(lat, lng):
    assert not is_valid_coordinate(lat, lng)


def test_valid_coordinates_include_bounds_and_numeric_strings():
    assert is_valid_coordinate(90.0, -180.0)
    assert is_valid_coordinate(0, 0)
    assert is_valid_coordinate("40.7", "-73.9")


def test_approximate_circle_is_closed_polygon():
    center = GeoPoint(lat=40.0, lng=-100.0)
    polygon = approximate_circle(center, 10_000, segments=32)

    coords = list(polygon.exterior.coords)
    assert len(coords) == 33
    assert coords[0] == coords[-1]
    assert polygon.is_valid
    # east-west extent is widened by 1/cos(lat)
    min_x, min_y, max_x, max_y = polygon.bounds
    assert (max_x - min_x) > (max_y - min_y)
    assert polygon.centroid.x == pytest.approx(center.lng, abs=1e-6)
    assert polygon.centroid.y == pytest.approx(center.lat, abs=1e-6)


def test_approximate_circle_rejects_too_few_segments():
    with pytest.raises(ValueError):
        approximate_circle(GeoPoint(lat=0, lng=0), 1000, segments=2)


def test_circle_feature_shape():
    feature = circle_feature(GeoPoint(lat=40.0, lng=-100.0), 5000, segments=8)
    assert feature["type"] == "Feature"
    assert feature["geometry"]["type"] == "Polygon"
    ring = feature["geometry"]["coordinates"][0]
    assert len(ring) == 9
    assert ring[0] == ring[-1]
    assert feature["properties"]["radius_meters"] == 5000


def test_zoom_for_radius_is_clamped_inverse_log():
    assert zoom_for_radius(5) == pytest.approx(13.0)
    assert zoom_for_radius(10) == pytest.approx(12.0)
    assert zoom_for_radius(100) == pytest.approx(13 - math.log2(20))
    assert zoom_for_radius(1) == 13.0
    assert zoom_for_radius(10_000) == 6.0
    assert zoom_for_radius(5) > zoom_for_radius(100)


def test_meters_per_pixel_halves_per_zoom_level():
    assert meters_per_pixel(0, 1) == pytest.approx(meters_per_pixel(0, 0) / 2)
    assert meters_per_pixel(60, 5) == pytest.approx(meters_per_pixel(0, 5) / 2, rel=1e-9)
