"""CSV and Excel export of the displayed customers."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from ...models.domain import Customer
from ...persistence.filesystem import FileStorage
from ..products.classifier import ProductClassifier

logger = logging.getLogger(__name__)

ExportFormat = Literal["csv", "xlsx"]

EXPORT_COLUMNS = (
    "id",
    "customer_id",
    "name",
    "company",
    "email",
    "phone",
    "address",
    "city",
    "state",
    "postal_code",
    "latitude",
    "longitude",
    "products_interested",
    "product_type",
    "status",
    "registered_at",
    "customer_type",
    "source_system",
)

MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@dataclass(slots=True)
class ExportResult:
    path: Path
    filename: str
    media_type: str
    count: int


def customer_rows(customers: Sequence[Customer], classifier: ProductClassifier) -> list[dict]:
    rows = []
    for customer in customers:
        rows.append(
            {
                "id": customer.id,
                "customer_id": customer.customer_id,
                "name": customer.name,
                "company": customer.company or "",
                "email": customer.email or "",
                "phone": customer.phone or "",
                "address": customer.address or "",
                "city": customer.city or "",
                "state": customer.state,
                "postal_code": customer.postal_code,
                "latitude": customer.latitude if customer.latitude is not None else "",
                "longitude": customer.longitude if customer.longitude is not None else "",
                "products_interested": "; ".join(customer.products_interested),
                "product_type": classifier.classify(customer.products_interested).type,
                "status": customer.status,
                "registered_at": customer.registered_at,
                "customer_type": customer.customer_type,
                "source_system": customer.source_system,
            }
        )
    return rows


def to_csv(customers: Sequence[Customer], classifier: ProductClassifier) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(customer_rows(customers, classifier))
    return buffer.getvalue()


def to_xlsx(customers: Sequence[Customer], classifier: ProductClassifier) -> bytes:
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Customers"
    sheet.append(list(EXPORT_COLUMNS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in customer_rows(customers, classifier):
        sheet.append([row[column] for column in EXPORT_COLUMNS])
    sheet.freeze_panes = "A2"

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_customers(
    customers: Sequence[Customer],
    classifier: ProductClassifier,
    *,
    fmt: ExportFormat = "csv",
    storage: FileStorage | None = None,
) -> ExportResult:
    """Write the customers to ``outputs/exports_<timestamp>/customers.<fmt>``."""

    if fmt not in MEDIA_TYPES:
        raise ValueError(f"Unsupported export format '{fmt}'. Use csv or xlsx.")
    storage = storage or FileStorage()
    run_dir = storage.make_run_directory("exports")
    filename = f"customers.{fmt}"
    path = run_dir / filename
    if fmt == "csv":
        storage.write_csv(path, to_csv(customers, classifier))
    else:
        storage.write_bytes(path, to_xlsx(customers, classifier))
    logger.info(f"Exported {len(customers)} customers to {path}")
    return ExportResult(path=path, filename=filename, media_type=MEDIA_TYPES[fmt], count=len(customers))
