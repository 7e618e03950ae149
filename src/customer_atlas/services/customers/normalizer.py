"""Convert raw backend customer records into canonical :class:`Customer` objects."""

from __future__ import annotations

import json
import logging
import math
import re
import uuid
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ...models.domain import (
    CUSTOMER_STATUSES,
    DEFAULT_STATUS,
    PLACEHOLDER_POSTAL_CODE,
    UNKNOWN_STATE,
    Customer,
)
from ..products.classifier import normalize_product_list

logger = logging.getLogger(__name__)

UNKNOWN_CUSTOMER_NAME = "Unknown Customer"

# Canonical field -> accepted source keys, in priority order.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "customer_uuid", "uuid"),
    "customer_id": ("customer_id", "claimed_by", "CustomerId"),
    "name": ("name", "customer_name", "CustomerName"),
    "company": ("company", "company_name", "organization"),
    "email": ("email", "email_address"),
    "phone": ("phone", "phone_number", "telephone"),
    "address": ("address", "street", "address_line1"),
    "city": ("city", "town"),
    "state": ("state", "state_code"),
    "postal_code": ("postal_code", "zip_code", "zip", "zipcode", "postalCode"),
    "latitude": ("latitude", "lat", "Latitude"),
    "longitude": ("longitude", "lng", "lon", "Longitude"),
    "products_interested": (
        "products_interested",
        "product(s)_interested",
        "productsInterested",
        "products",
    ),
    "registered_at": ("registered_at", "registeredAt", "created_at", "createdAt"),
    "status": ("status",),
    "customer_type": ("customer_type", "customerType"),
    "source_system": ("source_system", "sourceSystem"),
}

_STATE_PATTERN = re.compile(r"^[A-Z]{2}$")


def _first(raw: Mapping[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_coordinate(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        logger.debug(f"Unable to parse coordinate from value {value!r}")
        return None
    return number if math.isfinite(number) else None


def _normalize_state(value: Any) -> str:
    text = (_text(value) or "").upper()
    return text if _STATE_PATTERN.match(text) else UNKNOWN_STATE


def _normalize_postal_code(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    digits = re.sub(r"\D", "", str(value)) if value is not None else ""
    if len(digits) >= 5:
        return digits[:5]
    if digits:
        # Spreadsheets drop leading zeros from New England codes.
        return digits.zfill(5)
    return PLACEHOLDER_POSTAL_CODE


def _normalize_registered_at(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _text(value)
    if not text:
        return date.today().isoformat()
    return text.split("T", 1)[0].split(" ", 1)[0]


def _normalize_status(value: Any) -> str:
    status = (_text(value) or "").lower()
    return status if status in CUSTOMER_STATUSES else DEFAULT_STATUS


def _fallback_id(raw: Mapping[str, Any]) -> str:
    fingerprint = json.dumps(dict(raw), sort_keys=True, default=str)
    return str(uuid.uuid5(uuid.NAMESPACE_URL, fingerprint))


def normalize_customer(raw: Mapping[str, Any] | Customer) -> Customer:
    """Normalize a raw record; missing fields resolve to documented defaults.

    Never raises for malformed values. Already-normalized customers are
    returned unchanged.
    """

    if isinstance(raw, Customer):
        return raw

    record_id = _text(_first(raw, "id")) or _text(_first(raw, "customer_id")) or _fallback_id(raw)
    company = _text(_first(raw, "company"))
    name = _text(_first(raw, "name")) or company or UNKNOWN_CUSTOMER_NAME

    latitude = _coerce_coordinate(_first(raw, "latitude"))
    longitude = _coerce_coordinate(_first(raw, "longitude"))
    if latitude is None or longitude is None:
        logger.debug(f"Customer {record_id} ({name}) has no usable coordinates and will not be plotted")

    return Customer(
        id=record_id,
        customer_id=_text(_first(raw, "customer_id")) or record_id,
        name=name,
        company=company,
        email=_text(_first(raw, "email")),
        phone=_text(_first(raw, "phone")),
        address=_text(_first(raw, "address")),
        city=_text(_first(raw, "city")),
        state=_normalize_state(_first(raw, "state")),
        postal_code=_normalize_postal_code(_first(raw, "postal_code")),
        latitude=latitude,
        longitude=longitude,
        products_interested=tuple(normalize_product_list(_first(raw, "products_interested"))),
        registered_at=_normalize_registered_at(_first(raw, "registered_at")),
        status=_normalize_status(_first(raw, "status")),
        customer_type=_text(_first(raw, "customer_type")) or "customer",
        source_system=_text(_first(raw, "source_system")) or "unknown",
    )


def normalize_customers(records: Any) -> list[Customer]:
    """Normalize a batch, ignoring entries that are not mappings."""

    customers: list[Customer] = []
    for record in records or ():
        if isinstance(record, (Customer, Mapping)):
            customers.append(normalize_customer(record))
        else:
            logger.warning(f"Skipping customer record of unexpected type {type(record).__name__}")
    with_coordinates = sum(1 for customer in customers if customer.has_coordinates)
    logger.info(f"Normalized {len(customers)} customers ({with_coordinates} with coordinates)")
    return customers


def customer_to_record(customer: Customer) -> dict[str, Any]:
    """Plain dict in canonical field names; ``normalize_customer`` accepts it back."""

    record = asdict(customer)
    record["products_interested"] = list(customer.products_interested)
    return record
