import csv
import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

from customer_atlas.config import settings
from customer_atlas.data import customers_repository
from customer_atlas.main import create_app
from customer_atlas.services.geocoding import GeocodeResult, GeocodingError, get_geocoder_client

CSV_TEXT = (
    "id,name,state,postal_code,latitude,longitude,products_interested,status,registered_at\n"
    "near,Near Clinic,NY,10027,40.81,-73.96,SATE,lead,2022-06-01\n"
    "far,Far Clinic,NY,12550,41.5,-74.0,AudioSight,customer,2023-01-01\n"
    "west,West Clinic,CA,90012,34.05,-118.24,\"[\"\"SATE\"\",\"\"AudioSight\"\"]\",prospect,2024-02-02\n"
    "lost,Lost Clinic,TX,73301,,,SATE,lead,2021-05-05\n"
)
HARLEM = GeocodeResult(latitude=40.809, longitude=-73.962, display_name="New York City, NY 10027")


class FakeGeocoder:
    base_url = "https://zip.test"

    def __init__(self, error=None):
        self.error = error

    async def geocode_postal_code(self, code, country=None):
        if self.error is not None:
            raise self.error
        return {"10027": HARLEM}.get(code)

    async def check_health(self):
        return self.error is None


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def client(tmp_path: Path, monkeypatch, geocoder):
    customer_file = tmp_path / "customers.csv"
    customer_file.write_text(CSV_TEXT, encoding="utf-8")
    monkeypatch.setattr(settings, "customer_file", customer_file)
    monkeypatch.setattr(settings, "data_root", tmp_path)
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_key", None)
    monkeypatch.setattr(customers_repository, "get_supabase_client", lambda: None)

    app = create_app()
    app.dependency_overrides[get_geocoder_client] = lambda: geocoder
    with TestClient(app) as test_client:
        yield test_client


def _ids(collection: dict) -> list[str]:
    return [feature["properties"]["id"] for feature in collection["features"]]


def test_root_and_health(client: TestClient) -> None:
    assert client.get("/").json()["status"] == "running"
    assert client.get("/api/health").json() == {"status": "ok"}

    geocoder_health = client.get("/api/health/geocoder").json()
    assert geocoder_health["healthy"] is True

    database = client.get("/api/health/database").json()
    assert database["configured"] is False


def test_customer_stats(client: TestClient) -> None:
    response = client.get("/api/customers/stats")
    assert response.status_code == 200
    payload = response.json()
    assert payload["totalCustomers"] == 4
    assert payload["plottedCustomers"] == 3
    assert payload["missingCoordinates"] == 1
    assert payload["productTypeCounts"]["Multiple Products"] == 1
    assert [item["id"] for item in payload["missingSample"]] == ["lost"]


def test_filter_options(client: TestClient) -> None:
    payload = client.get("/api/customers/options").json()
    assert payload == {"states": ["CA", "NY", "TX"], "products": ["AudioSight", "SATE"]}


def test_missing_customer_file_is_404(client: TestClient, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(settings, "customer_file", tmp_path / "absent.csv")
    customers_repository.clear_caches()
    assert client.get("/api/customers/stats").status_code == 404


def test_map_features_are_split_into_layers(client: TestClient) -> None:
    response = client.post("/api/map/features", json={})
    assert response.status_code == 200
    payload = response.json()

    assert _ids(payload["layers"]["SATE"]) == ["near"]
    assert _ids(payload["layers"]["AudioSight"]) == ["far"]
    assert _ids(payload["layers"]["other"]) == ["west"]
    assert payload["counts"] == {"total": 4, "filtered": 4, "displayed": 3, "plotted": 3, "dropped": 1}
    assert payload["layerCounts"] == {"SATE": 1, "AudioSight": 1, "other": 1}
    assert payload["radius"] is None


def test_map_features_apply_filters(client: TestClient) -> None:
    payload = client.post(
        "/api/map/features",
        json={"states": ["NY", "CA"], "statuses": ["lead", "prospect"], "date_from": "2023", "date_to": "2022"},
    ).json()
    assert _ids(payload["layers"]["SATE"]) == ["near"]
    assert payload["layerCounts"] == {"SATE": 1, "AudioSight": 0, "other": 0}


def test_map_features_with_radius(client: TestClient) -> None:
    payload = client.post("/api/map/features", json={"postal_code": "10027", "radius_miles": 10}).json()

    assert payload["layerCounts"] == {"SATE": 1, "AudioSight": 0, "other": 0}
    radius = payload["radius"]
    assert radius["status"] == "resolved"
    assert radius["count"] == 1
    assert radius["center"] == {"lat": 40.809, "lng": -73.962}
    assert radius["zoom"] == pytest.approx(12.0)
    assert radius["circle"]["geometry"]["type"] == "Polygon"


def test_radius_endpoint_statuses(client: TestClient) -> None:
    resolved = client.post("/api/map/radius", json={"postal_code": "10027", "radius_miles": 60}).json()
    assert resolved["status"] == "resolved"
    assert resolved["count"] == 2

    unknown = client.post("/api/map/radius", json={"postal_code": "99999"}).json()
    assert unknown["status"] == "no_results"
    assert unknown["center"] is None
    assert unknown["radius_miles"] == settings.default_radius_miles

    invalid = client.post("/api/map/radius", json={"postal_code": "12ab"}).json()
    assert invalid["status"] == "invalid"

    blank = client.post("/api/map/radius", json={"postal_code": ""}).json()
    assert blank["status"] == "invalid"


def test_radius_rejects_non_positive_radius(client: TestClient) -> None:
    response = client.post("/api/map/radius", json={"postal_code": "10027", "radius_miles": 0})
    assert response.status_code == 422


def test_geocoder_outage_is_503(client: TestClient, geocoder: FakeGeocoder) -> None:
    geocoder.error = GeocodingError("service down")
    response = client.post("/api/map/features", json={"postal_code": "10027"})
    assert response.status_code == 503


def test_cluster_preview(client: TestClient) -> None:
    payload = client.post("/api/map/clusters?zoom=5", json={}).json()

    assert payload["zoom"] == 5
    assert payload["clusterCount"] == 0
    assert payload["pointCount"] == 3
    assert set(payload["layers"]) == {"SATE", "AudioSight", "other"}


def test_export_csv(client: TestClient) -> None:
    response = client.post("/api/customers/export?format=csv", json={"states": ["NY"]})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert [row["id"] for row in rows] == ["near", "far"]


def test_export_xlsx(client: TestClient) -> None:
    response = client.post("/api/customers/export?format=xlsx", json={})
    assert response.status_code == 200
    sheet = load_workbook(io.BytesIO(response.content)).active
    assert sheet.max_row == 5


def test_export_rejects_unknown_format(client: TestClient) -> None:
    assert client.post("/api/customers/export?format=pdf", json={}).status_code == 422


def test_upload_csv_replaces_dataset(client: TestClient, tmp_path: Path) -> None:
    content = "name,state,latitude,longitude,products_interested\nUploaded,WA,47.6,-122.3,SATE\n"
    response = client.post(
        "/api/customers/upload",
        files={"file": ("new_customers.csv", content.encode("utf-8"), "text/csv")},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["fileName"] == "new_customers.csv"
    assert payload["rows"] == 1
    assert payload["stats"]["totalCustomers"] == 1
    assert (tmp_path / "uploads" / payload["storedAs"]).exists()
    assert client.get("/api/customers/options").json()["states"] == ["WA"]


def test_upload_workbook(client: TestClient) -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(["name", "state", "latitude", "longitude"])
    ws.append(["Sheet Clinic", "OR", 45.5, -122.7])
    buffer = io.BytesIO()
    wb.save(buffer)

    response = client.post(
        "/api/customers/upload",
        files={"file": ("customers.xlsx", buffer.getvalue(), "application/octet-stream")},
    )

    assert response.status_code == 201
    assert response.json()["stats"]["plottedCustomers"] == 1


def test_upload_rejects_other_file_types(client: TestClient) -> None:
    response = client.post(
        "/api/customers/upload",
        files={"file": ("customers.json", b"[]", "application/json")},
    )
    assert response.status_code == 415


def test_refresh_reloads_dataset(client: TestClient) -> None:
    assert client.get("/api/customers/stats").json()["totalCustomers"] == 4
    settings.customer_file.write_text(CSV_TEXT.splitlines()[0] + "\nonly,Only,NY,10001,40.7,-74.0,SATE,lead,2020-01-01\n")

    response = client.post("/api/customers/refresh")

    assert response.status_code == 200
    assert response.json()["totalCustomers"] == 1


def test_database_health_when_configured(client: TestClient, monkeypatch) -> None:
    from customer_atlas.api.routes import health

    class Response:
        data = [{"id": "1"}]
        count = 42

    class Query:
        def select(self, columns, count=None):
            return self

        def limit(self, size):
            return self

        def execute(self):
            return Response()

    class Client:
        def table(self, name):
            assert name == settings.customers_table
            return Query()

    monkeypatch.setattr(health, "get_supabase_client", lambda: Client())

    assert client.get("/api/health/database").json() == {
        "configured": True,
        "customers_table": "customers",
        "connected": True,
        "row_count": 42,
    }
