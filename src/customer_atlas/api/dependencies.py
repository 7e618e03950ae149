"""Shared request helpers for the customer and map routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status

from ..config import settings
from ..data.customers_repository import load_customers, load_products
from ..models.domain import Customer, FilterState, Product
from ..schemas.map import FilterRequest, PointModel, RadiusResponse
from ..services.filters.engine import apply_attribute_filters, apply_filters, apply_radius_filter
from ..services.geocoding.client import GeocoderClient, GeocodingError
from ..services.products.classifier import ProductClassifier
from ..services.radius.controller import RadiusController

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Dataset:
    customers: list[Customer]
    products: list[Product]
    classifier: ProductClassifier


def get_dataset() -> Dataset:
    try:
        customers = list(load_customers())
    except FileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConnectionError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    products = list(load_products())
    return Dataset(customers=customers, products=products, classifier=ProductClassifier(products))


def to_filter_state(request: FilterRequest) -> FilterState:
    return FilterState(
        selected_states=list(request.states),
        selected_products=list(request.products),
        statuses=set(request.statuses),
        date_from=request.date_from,
        date_to=request.date_to,
        postal_code=request.postal_code,
        radius_miles=request.radius_miles or settings.default_radius_miles,
    )


async def resolve_radius(
    filters: FilterState,
    customers: list[Customer],
    geocoder: GeocoderClient,
) -> Optional[RadiusController]:
    """Resolve the postal code of ``filters`` into a radius, or None when no code is set."""

    if not filters.postal_code.strip():
        return None

    def _count_within(center, radius_miles: float) -> int:
        return len(apply_radius_filter(apply_attribute_filters(customers, filters), center, radius_miles))

    controller = RadiusController(
        geocoder,
        count_within=_count_within,
        radius_miles=filters.radius_miles,
        debounce_seconds=0,
    )
    try:
        await controller.resolve_center(filters.postal_code)
    except GeocodingError as exc:
        logger.error(f"Geocoding failed for {filters.postal_code!r}: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return controller


def filtered_customers(
    customers: list[Customer], filters: FilterState, radius: Optional[RadiusController]
) -> list[Customer]:
    center = radius.center if radius is not None else None
    return apply_filters(customers, filters, center=center)


def radius_response(radius: RadiusController) -> RadiusResponse:
    center = radius.center
    return RadiusResponse(
        status=radius.status if radius.status in ("resolved", "no_results", "invalid") else "no_results",
        postal_code=radius.postal_code,
        radius_miles=radius.radius_miles,
        center=PointModel(lat=center.lat, lng=center.lng) if center is not None else None,
        zoom=radius.zoom,
        count=radius.count,
        display_name=radius.display_name,
        circle=radius.circle_feature(),
    )
