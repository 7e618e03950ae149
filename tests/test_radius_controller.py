import asyncio

import pytest

from customer_atlas.models.domain import GeoPoint
from customer_atlas.services.geocoding import GeocodeResult, GeocodingError
from customer_atlas.services.geospatial import haversine_meters, miles_to_meters
from customer_atlas.services.radius.controller import RadiusController

HARLEM = GeocodeResult(latitude=40.809, longitude=-73.962, display_name="New York City, NY 10027")
CUSTOMERS = [GeoPoint(lat=40.81, lng=-73.96), GeoPoint(lat=41.5, lng=-74.0)]


class FakeGeocoder:
    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.calls = []
        self.gates: dict[str, asyncio.Event] = {}

    async def geocode_postal_code(self, code, country=None):
        self.calls.append(code)
        gate = self.gates.get(code)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        return self.results.get(code)


def _count_within(center: GeoPoint, radius_miles: float) -> int:
    limit = miles_to_meters(radius_miles)
    return sum(1 for p in CUSTOMERS if haversine_meters(center.lat, center.lng, p.lat, p.lng) <= limit)


def _controller(geocoder, **kwargs) -> RadiusController:
    kwargs.setdefault("radius_miles", 10)
    kwargs.setdefault("debounce_seconds", 0)
    return RadiusController(geocoder, count_within=_count_within, **kwargs)


@pytest.mark.asyncio
async def test_resolved_postal_code_counts_customers_and_moves_camera():
    moves = []
    controller = _controller(FakeGeocoder({"10027": HARLEM}), on_camera_move=lambda c, z: moves.append((c, z)))

    center = await controller.resolve_center("10027")

    assert center == GeoPoint(lat=40.809, lng=-73.962)
    assert controller.status == "resolved"
    assert controller.count == 1
    assert controller.display_name == "New York City, NY 10027"
    assert controller.zoom == pytest.approx(12.0)
    assert moves == [(center, controller.zoom)]


@pytest.mark.asyncio
async def test_unknown_postal_code_clears_center():
    controller = _controller(FakeGeocoder({"10027": HARLEM}))
    await controller.resolve_center("10027")

    assert await controller.resolve_center("99999") is None
    assert controller.status == "no_results"
    assert controller.center is None
    assert controller.count == 0
    assert controller.circle_feature() is None


@pytest.mark.asyncio
async def test_invalid_postal_code_is_not_geocoded():
    geocoder = FakeGeocoder()
    controller = _controller(geocoder)

    assert await controller.resolve_center("12ab") is None
    assert controller.status == "invalid"
    assert geocoder.calls == []


@pytest.mark.asyncio
async def test_blank_postal_code_returns_to_idle():
    controller = _controller(FakeGeocoder({"10027": HARLEM}))
    await controller.resolve_center("10027")

    assert await controller.resolve_center("  ") is None
    assert controller.status == "idle"
    assert controller.center is None


@pytest.mark.asyncio
async def test_stale_response_is_discarded():
    geocoder = FakeGeocoder(
        {
            "10027": HARLEM,
            "90210": GeocodeResult(latitude=34.09, longitude=-118.41, display_name="Beverly Hills, CA 90210"),
        }
    )
    geocoder.gates["10027"] = asyncio.Event()
    controller = _controller(geocoder)

    slow = asyncio.ensure_future(controller.resolve_center("10027"))
    await asyncio.sleep(0)
    assert await controller.resolve_center("90210") == GeoPoint(lat=34.09, lng=-118.41)

    geocoder.gates["10027"].set()
    assert await slow is None
    assert controller.postal_code == "90210"
    assert controller.center == GeoPoint(lat=34.09, lng=-118.41)


@pytest.mark.asyncio
async def test_schedule_debounces_rapid_input():
    geocoder = FakeGeocoder({"10027": HARLEM})
    controller = _controller(geocoder, debounce_seconds=0.05)

    first = controller.schedule("1002")
    second = controller.schedule("10027")
    await asyncio.sleep(0)

    assert await second == GeoPoint(lat=40.809, lng=-73.962)
    assert first.cancelled()
    assert geocoder.calls == ["10027"]


@pytest.mark.asyncio
async def test_cancel_pending_discards_in_flight_request():
    geocoder = FakeGeocoder({"10027": HARLEM})
    geocoder.gates["10027"] = asyncio.Event()
    controller = _controller(geocoder)

    task = controller.schedule("10027")
    await asyncio.sleep(0)
    controller.cancel_pending()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert controller.center is None
    assert controller.status == "idle"


@pytest.mark.asyncio
async def test_geocoding_failure_sets_error_and_propagates():
    controller = _controller(FakeGeocoder(error=GeocodingError("service down")))

    with pytest.raises(GeocodingError):
        await controller.resolve_center("10027")
    assert controller.status == "error"
    assert controller.center is None


@pytest.mark.asyncio
async def test_set_radius_recounts_and_rezooms():
    moves = []
    controller = _controller(FakeGeocoder({"10027": HARLEM}), on_camera_move=lambda c, z: moves.append(z))
    await controller.resolve_center("10027")

    controller.set_radius(60)

    assert controller.count == 2
    assert controller.zoom == pytest.approx(13.0 - 3.584962500721156)
    assert len(moves) == 2

    with pytest.raises(ValueError):
        controller.set_radius(0)


@pytest.mark.asyncio
async def test_circle_feature_surrounds_center():
    controller = _controller(FakeGeocoder({"10027": HARLEM}))
    await controller.resolve_center("10027")

    feature = controller.circle_feature(segments=16)

    assert feature["geometry"]["type"] == "Polygon"
    ring = feature["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1]
    for lng, lat in ring[:-1]:
        distance = haversine_meters(40.809, -73.962, lat, lng)
        assert distance == pytest.approx(miles_to_meters(10), rel=0.02)


def test_reset_clears_everything():
    controller = _controller(FakeGeocoder())
    controller.postal_code = "10027"
    controller.center = GeoPoint(lat=1.0, lng=1.0)
    controller.status = "resolved"

    controller.reset()

    assert controller.postal_code == ""
    assert controller.center is None
    assert controller.status == "idle"
