"""Convert customers into GeoJSON point features."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from shapely.geometry import Point, mapping, shape

from ...models.domain import Customer
from ..geospatial import is_valid_coordinate
from ..products.classifier import ProductClassifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FeatureBuildResult:
    features: list[dict] = field(default_factory=list)
    skipped_invalid: int = 0
    dropped_malformed: int = 0
    input_count: int = 0

    @property
    def count_mismatch(self) -> int:
        """Customers that went in but did not come out as features."""
        return self.input_count - len(self.features)


def feature_collection(features: Sequence[dict]) -> dict:
    return {"type": "FeatureCollection", "features": list(features)}


def _geometry_is_sane(geometry: Any) -> bool:
    if not isinstance(geometry, dict) or geometry.get("type") != "Point":
        return False
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        return False
    lng, lat = coordinates
    if not all(isinstance(value, (int, float)) and math.isfinite(value) for value in (lng, lat)):
        return False
    try:
        point = shape(geometry)
    except (ValueError, TypeError, AttributeError):
        return False
    return point.is_valid and not point.is_empty and is_valid_coordinate(lat, lng)


def build_feature(customer: Customer, classifier: ProductClassifier) -> dict:
    classification = classifier.classify(customer.products_interested)
    geometry = mapping(Point(float(customer.longitude), float(customer.latitude)))
    return {
        "type": "Feature",
        "properties": {
            "id": customer.id,
            "customer_id": customer.customer_id,
            "name": customer.name,
            "address": customer.address,
            "city": customer.city,
            "state": customer.state,
            "postal_code": customer.postal_code,
            "products_interested": list(customer.products_interested),
            "product_type": classification.type,
            "is_multiple": classification.is_multiple,
            "color": classifier.color_for(classification.type),
            "size": classifier.size_for(customer.status),
            "status": customer.status,
            "registered_at": customer.registered_at,
            "customer_type": customer.customer_type,
            "source_system": customer.source_system,
        },
        "geometry": {"type": geometry["type"], "coordinates": list(geometry["coordinates"])},
    }


def to_features(customers: Sequence[Customer], classifier: ProductClassifier) -> FeatureBuildResult:
    """Build map features, skipping customers without valid coordinates.

    Each constructed feature is validated again; malformed ones are logged and
    dropped rather than raised.
    """

    result = FeatureBuildResult(input_count=len(customers))
    for customer in customers:
        if not is_valid_coordinate(customer.latitude, customer.longitude):
            result.skipped_invalid += 1
            logger.debug(
                f"Filtering out customer {customer.id} ({customer.name}) with invalid coordinates: "
                f"lat={customer.latitude} lng={customer.longitude}"
            )
            continue

        feature = build_feature(customer, classifier)
        if not _geometry_is_sane(feature.get("geometry")):
            result.dropped_malformed += 1
            logger.error(f"Invalid feature created for customer {customer.id}: {feature.get('geometry')}")
            continue
        result.features.append(feature)

    if result.dropped_malformed:
        logger.warning(
            f"Feature count mismatch: {result.input_count} customers, {len(result.features)} features "
            f"({result.skipped_invalid} invalid coordinates, {result.dropped_malformed} malformed)"
        )
    logger.info(f"Created {len(result.features)} valid GeoJSON features from {result.input_count} customers")
    return result
