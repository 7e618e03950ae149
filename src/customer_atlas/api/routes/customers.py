"""Customer dataset endpoints."""

from __future__ import annotations

import csv
from datetime import datetime, timezone
from io import BytesIO, StringIO
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from openpyxl import load_workbook

from ...config import settings
from ...data.customers_repository import clear_caches, set_active_customer_file
from ...schemas.customers import CustomerStatsResponse, FilterOptionsResponse, UploadResponse
from ...schemas.map import FilterRequest
from ...services.customers import compute_customer_stats, list_missing_coordinates
from ...services.export import export_customers
from ...services.filters.engine import filter_options
from ...services.geocoding.client import GeocoderClient, get_geocoder_client
from ..dependencies import Dataset, filtered_customers, get_dataset, resolve_radius, to_filter_state

router = APIRouter(prefix="/customers", tags=["customers"])


def _stats(dataset: Dataset) -> CustomerStatsResponse:
    payload = compute_customer_stats(dataset.customers, dataset.classifier)
    payload["missingSample"] = list_missing_coordinates(dataset.customers)
    return CustomerStatsResponse(**payload)


@router.get("/stats", response_model=CustomerStatsResponse, status_code=status.HTTP_200_OK)
def get_customer_stats(dataset: Dataset = Depends(get_dataset)) -> CustomerStatsResponse:
    return _stats(dataset)


@router.get("/options", response_model=FilterOptionsResponse, status_code=status.HTTP_200_OK)
def get_filter_options(dataset: Dataset = Depends(get_dataset)) -> FilterOptionsResponse:
    options = filter_options(dataset.customers, dataset.products)
    return FilterOptionsResponse(states=options.states, products=options.products)


@router.post("/refresh", response_model=CustomerStatsResponse, status_code=status.HTTP_200_OK)
def refresh_customers() -> CustomerStatsResponse:
    """Drop cached customers and products and load them again."""
    clear_caches()
    return _stats(get_dataset())


@router.post("/export", status_code=status.HTTP_200_OK)
async def export_filtered_customers(
    request: FilterRequest,
    format: str = Query(default="csv", pattern="^(csv|xlsx)$"),
    dataset: Dataset = Depends(get_dataset),
    geocoder: GeocoderClient = Depends(get_geocoder_client),
) -> FileResponse:
    filters = to_filter_state(request)
    radius = await resolve_radius(filters, dataset.customers, geocoder)
    customers = filtered_customers(dataset.customers, filters, radius)
    result = export_customers(customers, dataset.classifier, fmt=format)
    return FileResponse(result.path, media_type=result.media_type, filename=result.filename)


def _read_upload_rows(suffix: str, contents: bytes) -> list[dict]:
    if suffix == ".csv":
        reader = csv.DictReader(StringIO(contents.decode("utf-8-sig")))
        return list(reader)

    workbook = load_workbook(filename=BytesIO(contents), read_only=True, data_only=True)
    worksheet = workbook.active
    headers = [str(cell) if cell is not None else "" for cell in next(worksheet.iter_rows(values_only=True), [])]
    rows = []
    for row_values in worksheet.iter_rows(values_only=True, min_row=2):
        row_dict = {headers[i]: ("" if cell is None else cell) for i, cell in enumerate(row_values) if i < len(headers)}
        rows.append(row_dict)
    return rows


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_customer_dataset(file: UploadFile = File(...)) -> UploadResponse:
    """Replace the file-backed customer dataset with an uploaded CSV or Excel file."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required.")

    suffix = Path(file.filename).suffix.lower()
    if suffix not in {".csv", ".xlsx"}:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail="Only .csv and .xlsx files are supported.")

    try:
        rows = _read_upload_rows(suffix, await file.read())
    except (UnicodeDecodeError, ValueError, KeyError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Could not read file: {exc}") from exc

    uploads_dir = settings.data_root / "uploads"
    uploads_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    destination = uploads_dir / f"customers_{timestamp}.csv"

    columns = list(dict.fromkeys(col for row in rows for col in row.keys()))
    with destination.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)

    set_active_customer_file(destination)
    return UploadResponse(
        fileName=file.filename,
        storedAs=destination.name,
        rows=len(rows),
        stats=_stats(get_dataset()),
    )
