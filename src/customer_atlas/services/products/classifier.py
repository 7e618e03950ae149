"""Product-interest normalization, classification and styling."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from ...models.domain import Product

logger = logging.getLogger(__name__)

MULTIPLE_PRODUCTS_TYPE = "Multiple Products"
OTHER_PRODUCT_TYPE = "Other"

MULTIPLE_PRODUCTS_COLOR = "#8b5cf6"
NEUTRAL_COLOR = "#6b7280"

# Lower-cased product name -> reserved marker color.
RESERVED_PRODUCT_COLORS = {
    "audiosight": "#ef4444",
    "sate": "#3b82f6",
    "armrehab": "#10b981",
}

FALLBACK_PALETTE = (
    "#f59e0b",
    "#ec4899",
    "#14b8a6",
    "#f97316",
)

STATUS_SIZES = {
    "customer": 12,
    "prospect": 10,
    "lead": 8,
}
DEFAULT_SIZE = 8

DEFAULT_PRODUCTS: tuple[Product, ...] = (
    Product(id="audiosight", name="AudioSight", description="Audio and hearing assessment technology"),
    Product(id="sate", name="SATE", description="Speech and auditory training equipment"),
)


@dataclass(slots=True, frozen=True)
class Classification:
    type: str
    is_multiple: bool


def normalize_product_list(raw: Any) -> list[str]:
    """Coerce the product-interest field into a list of product names.

    Accepted shapes: a sequence of names, a JSON-encoded array string, a bare
    name string, or ``None``. Never raises.
    """

    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [str(item).strip() for item in raw if item is not None and str(item).strip()]
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except (json.JSONDecodeError, ValueError):
                logger.debug(f"Product field looks like JSON but failed to parse: {text!r}")
                return [text]
            if isinstance(parsed, list):
                return normalize_product_list(parsed)
        return [text]
    return [str(raw)]


def classify_products(products: Sequence[str], known_products: Sequence[Product]) -> Classification:
    """Classify a customer's products against the catalog (case-insensitive).

    Two or more distinct catalog matches yield ``Multiple Products``; exactly
    one yields its catalog spelling; none falls back to the first raw entry or
    ``Other``.
    """

    by_lower = {product.name.lower(): product.name for product in known_products}
    matched: list[str] = []
    for name in products:
        canonical = by_lower.get(str(name).lower())
        if canonical is not None and canonical not in matched:
            matched.append(canonical)

    if len(matched) > 1:
        return Classification(MULTIPLE_PRODUCTS_TYPE, True)
    if matched:
        return Classification(matched[0], False)
    if products:
        return Classification(str(products[0]), False)
    return Classification(OTHER_PRODUCT_TYPE, False)


def color_for(product_type: str, known_products: Sequence[Product]) -> str:
    """Marker color for a product type.

    Fallback palette slots follow the catalog order, so reordering the catalog
    reassigns colors of non-reserved products.
    """

    if product_type == MULTIPLE_PRODUCTS_TYPE:
        return MULTIPLE_PRODUCTS_COLOR

    lowered = product_type.lower()
    reserved = RESERVED_PRODUCT_COLORS.get(lowered)
    if reserved:
        return reserved

    for index, product in enumerate(known_products):
        if product.name.lower() == lowered:
            return FALLBACK_PALETTE[index % len(FALLBACK_PALETTE)]

    return NEUTRAL_COLOR


def size_for(status: str | None) -> int:
    return STATUS_SIZES.get(status or "", DEFAULT_SIZE)


class ProductClassifier:
    """Classification helpers bound to one product catalog snapshot."""

    def __init__(self, known_products: Sequence[Product] | None = None) -> None:
        self.known_products: tuple[Product, ...] = tuple(known_products or ())

    def classify(self, products: Sequence[str]) -> Classification:
        return classify_products(products, self.known_products)

    def color_for(self, product_type: str) -> str:
        return color_for(product_type, self.known_products)

    def size_for(self, status: str | None) -> int:
        return size_for(status)

    @property
    def product_names(self) -> list[str]:
        return [product.name for product in self.known_products]
