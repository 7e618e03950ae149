"""Customer and product data access: database first, falling back to a local file."""

from __future__ import annotations

import asyncio
import csv
import functools
import logging
from pathlib import Path
from typing import Any, Optional

from openpyxl import load_workbook

from ..config import settings
from ..db.supabase import fetch_table, get_supabase_client
from ..models.domain import Customer, Product
from ..services.customers.normalizer import normalize_customers
from ..services.products.classifier import DEFAULT_PRODUCTS

logger = logging.getLogger(__name__)


def _header_key(name: Any) -> str:
    return str(name or "").strip().lower().replace(" ", "_")


def _load_customers_from_database() -> Optional[list[dict]]:
    """Raw customer rows from Supabase, or None when the database is not configured.

    Query failures raise ConnectionError; they are not hidden behind the file.
    """
    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        rows = fetch_table(supabase, settings.customers_table)
    except Exception as e:
        logger.error(f"Customer query failed: {e}")
        raise ConnectionError(f"Failed to load customers from database: {e}") from e
    logger.info(f"Loaded {len(rows)} customer rows from table '{settings.customers_table}'")
    return rows


def _load_rows_from_csv(path: Path) -> list[dict]:
    with path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Customer file '{path}' is missing a header row.")
        return [{_header_key(key): value for key, value in row.items() if key is not None} for row in reader]


def _load_rows_from_workbook(path: Path) -> list[dict]:
    wb = load_workbook(path, data_only=True, read_only=True)
    try:
        sheet = wb.active
        rows = sheet.iter_rows(min_row=1, values_only=True)
        header = next(rows, None)
        if header is None:
            raise ValueError(f"Customer workbook '{path}' is empty.")
        keys = [_header_key(name) for name in header]
        records: list[dict] = []
        for row in rows:
            if row is None or all(value is None for value in row):
                continue
            records.append({key: value for key, value in zip(keys, row) if key})
        return records
    finally:
        wb.close()


def _load_customers_from_file(source: Optional[Path] = None) -> list[dict]:
    path = source or settings.customer_file
    if not path.exists():
        raise FileNotFoundError(f"Customer file not found: {path}")
    if path.suffix.lower() in {".xlsx", ".xlsm"}:
        rows = _load_rows_from_workbook(path)
    else:
        rows = _load_rows_from_csv(path)
    logger.info(f"Loaded {len(rows)} customer rows from {path}")
    return rows


@functools.lru_cache(maxsize=1)
def load_raw_customers() -> tuple[dict, ...]:
    """Raw customer records as delivered by the backend (cached until :func:`clear_caches`)."""

    rows = _load_customers_from_database()
    if rows is None:
        rows = _load_customers_from_file()
    return tuple(rows)


@functools.lru_cache(maxsize=1)
def load_customers() -> tuple[Customer, ...]:
    """Normalized customers from :func:`load_raw_customers`."""

    return tuple(normalize_customers(load_raw_customers()))


def _parse_product_row(row: dict) -> Optional[Product]:
    name = str(row.get("name") or "").strip()
    if not name:
        return None
    description = row.get("description")
    return Product(
        id=str(row.get("id") or name),
        name=name,
        description=str(description) if description else None,
    )


@functools.lru_cache(maxsize=1)
def load_products() -> tuple[Product, ...]:
    """Product catalog; any failure degrades to the two default products."""

    supabase = get_supabase_client()
    if not supabase:
        logger.info("Database not configured, using default product catalog")
        return DEFAULT_PRODUCTS

    try:
        rows = fetch_table(supabase, settings.products_table, order="name")
    except Exception as e:
        logger.warning(f"Error fetching products, using defaults: {e}")
        return DEFAULT_PRODUCTS

    products = [product for product in map(_parse_product_row, rows) if product is not None]
    if not products:
        logger.warning("Product table is empty, using defaults")
        return DEFAULT_PRODUCTS
    return tuple(products)


async def fetch_customers() -> list[dict]:
    return list(await asyncio.to_thread(load_raw_customers))


async def fetch_products() -> list[Product]:
    return list(await asyncio.to_thread(load_products))


def clear_caches() -> None:
    """Forget cached customers and products so the next load hits the sources again."""

    load_raw_customers.cache_clear()
    load_customers.cache_clear()
    load_products.cache_clear()


def set_active_customer_file(path: Path) -> None:
    """Point the file fallback at ``path`` and clear related caches."""

    settings.customer_file = path
    clear_caches()
