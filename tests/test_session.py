import asyncio

import pytest

from customer_atlas.config import settings
from customer_atlas.models.domain import GeoPoint, Product
from customer_atlas.services.geocoding import GeocodeResult, GeocodingError
from customer_atlas.services.map_engine import LocalMapEngine
from customer_atlas.services.products.classifier import DEFAULT_PRODUCTS
from customer_atlas.services.session import MapSession

RECORDS = [
    {"id": "near", "name": "Near", "state": "NY", "latitude": 40.81, "longitude": -73.96,
     "products_interested": "[\"SATE\"]", "status": "lead", "registered_at": "2022-06-01"},
    {"id": "far", "name": "Far", "state": "NY", "latitude": 41.5, "longitude": -74.0,
     "products_interested": "AudioSight", "status": "customer", "registered_at": "2023-01-01"},
    {"id": "west", "name": "West", "state": "CA", "latitude": 34.05, "longitude": -118.24,
     "products_interested": ["SATE", "AudioSight"], "status": "prospect", "registered_at": "2024-02-02"},
    {"id": "nowhere", "name": "Nowhere", "state": "TX", "latitude": None, "longitude": None,
     "products_interested": ["SATE"], "status": "lead"},
]
HARLEM = GeocodeResult(latitude=40.809, longitude=-73.962, display_name="New York City, NY 10027")


class FakeGeocoder:
    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.calls = []

    async def geocode_postal_code(self, code, country=None):
        self.calls.append(code)
        if self.error is not None:
            raise self.error
        return self.results.get(code)


def _fetcher(records):
    async def _fetch():
        return list(records)

    return _fetch


async def _products():
    return list(DEFAULT_PRODUCTS)


@pytest.fixture(autouse=True)
def no_debounce(monkeypatch):
    monkeypatch.setattr(settings, "geocode_debounce_seconds", 0.0)


def _session(records=RECORDS, geocoder=None, **kwargs) -> MapSession:
    kwargs.setdefault("fetch_products", _products)
    return MapSession(
        geocoder=geocoder or FakeGeocoder({"10027": HARLEM}),
        fetch_customers=_fetcher(records),
        **kwargs,
    )


def _ids(session: MapSession) -> list[str]:
    return [feature["properties"]["id"] for feature in session.displayed]


@pytest.mark.asyncio
async def test_load_normalizes_and_displays_plottable_customers():
    session = _session()
    await session.load()

    assert len(session.customers) == 4
    assert _ids(session) == ["near", "far", "west"]
    assert session.features.skipped_invalid == 1
    assert session.stats()["totalCustomers"] == 4
    assert session.options.states == ["CA", "NY", "TX"]


@pytest.mark.asyncio
async def test_product_fetch_failure_falls_back_to_defaults():
    async def broken_products():
        raise ConnectionError("products table unavailable")

    session = _session(fetch_products=broken_products)
    await session.load()

    assert session.products == list(DEFAULT_PRODUCTS)
    assert session.last_error is None
    assert len(session.displayed) == 3


@pytest.mark.asyncio
async def test_empty_product_catalog_falls_back_to_defaults():
    async def no_products():
        return []

    session = _session(fetch_products=no_products)
    await session.load()
    assert session.products == list(DEFAULT_PRODUCTS)


@pytest.mark.asyncio
async def test_customer_fetch_failure_leaves_an_empty_map():
    async def broken_customers():
        raise ConnectionError("database unreachable")

    session = MapSession(geocoder=FakeGeocoder(), fetch_customers=broken_customers, fetch_products=_products)
    await session.load()

    assert session.customers == []
    assert session.displayed == []
    assert isinstance(session.last_error, ConnectionError)


@pytest.mark.asyncio
async def test_update_filters_recomputes_display():
    session = _session()
    await session.load()

    session.update_filters(selected_states=["NY"])
    assert _ids(session) == ["near", "far"]

    session.update_filters(statuses=["customer"])
    assert _ids(session) == ["far"]

    session.reset_filters()
    assert _ids(session) == ["near", "far", "west"]

    with pytest.raises(ValueError):
        session.update_filters(postal_code="10027")


@pytest.mark.asyncio
async def test_postal_code_radius_limits_display():
    session = _session()
    await session.load()
    session.set_radius(10)

    center = await session.set_postal_code("10027")

    assert center == GeoPoint(lat=40.809, lng=-73.962)
    assert _ids(session) == ["near"]
    assert session.radius_count == 1

    session.set_radius(60)
    assert _ids(session) == ["near", "far"]
    assert session.radius_count == 2


@pytest.mark.asyncio
async def test_radius_count_respects_attribute_filters():
    session = _session()
    await session.load()
    session.set_radius(60)
    await session.set_postal_code("10027")

    session.update_filters(statuses=["lead"])

    assert _ids(session) == ["near"]
    assert session.radius_count == 1


@pytest.mark.asyncio
async def test_unknown_postal_code_shows_everything():
    session = _session()
    await session.load()

    assert await session.set_postal_code("99999") is None
    assert session.radius.status == "no_results"
    assert len(session.displayed) == 3


@pytest.mark.asyncio
async def test_geocoding_failure_is_recorded_and_raised():
    session = _session(geocoder=FakeGeocoder(error=GeocodingError("down")))
    await session.load()

    with pytest.raises(GeocodingError):
        await session.set_postal_code("10027")
    assert isinstance(session.last_error, GeocodingError)
    assert len(session.displayed) == 3


@pytest.mark.asyncio
async def test_refresh_cancels_pending_postal_lookup():
    geocoder = FakeGeocoder({"10027": HARLEM})
    session = _session(geocoder=geocoder)
    await session.load()

    task = session.schedule_postal_code("10027")
    await session.refresh()
    await asyncio.sleep(0)

    assert task.cancelled()
    assert geocoder.calls == []
    assert session.radius.center is None


@pytest.mark.asyncio
async def test_refresh_reapplies_postal_code_to_new_data():
    records = list(RECORDS)
    session = _session(records=records)
    await session.load()
    session.set_radius(10)
    await session.set_postal_code("10027")
    assert session.radius_count == 1

    records.append({"id": "neighbor", "name": "Neighbor", "state": "NY", "latitude": 40.80,
                    "longitude": -73.95, "products_interested": ["SATE"], "status": "lead"})
    await session.refresh()

    assert session.radius_count == 2
    assert _ids(session) == ["near", "neighbor"]


@pytest.mark.asyncio
async def test_session_drives_map_layers():
    engine = LocalMapEngine(zoom=10)
    engine.load()
    session = _session(engine=engine)

    await session.start()

    current = session.layers.current
    assert [f["properties"]["id"] for f in current["SATE"]] == ["near"]
    assert [f["properties"]["id"] for f in current["AudioSight"]] == ["far"]
    assert [f["properties"]["id"] for f in current["other"]] == ["west"]
    assert len(engine.source_features("customers-sate")) == 1

    session.set_radius(10)
    await session.set_postal_code("10027")

    assert engine.camera_moves[-1]["zoom"] == pytest.approx(12.0)
    assert engine.camera_moves[-1]["center"] == GeoPoint(lat=40.809, lng=-73.962)
    assert session.layers.current["AudioSight"] == []
