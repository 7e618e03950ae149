"""Multi-criteria customer filtering.

Every predicate is independent and only active when its selection is
non-empty; a customer must pass all active predicates. The postal-code radius
predicate runs last, over the customers that passed state, status, date and
product selection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from ...models.domain import Customer, FilterState, GeoPoint, Product
from ..geospatial import haversine_meters, is_valid_coordinate, miles_to_meters
from .dates import parse_registered_at, resolve_date_bounds

logger = logging.getLogger(__name__)

Predicate = Callable[[Customer], bool]


@dataclass(slots=True, frozen=True)
class FilterOptions:
    states: list[str]
    products: list[str]


def _state_predicate(filters: FilterState) -> Optional[Predicate]:
    if not filters.selected_states:
        return None
    selected = set(filters.selected_states)
    return lambda customer: customer.state in selected


def _status_predicate(filters: FilterState) -> Optional[Predicate]:
    if not filters.statuses:
        return None
    selected = set(filters.statuses)
    return lambda customer: customer.status in selected


def _date_predicate(filters: FilterState) -> Optional[Predicate]:
    lower, upper = resolve_date_bounds(filters.date_from, filters.date_to)
    if lower is None and upper is None:
        return None

    def predicate(customer: Customer) -> bool:
        registered = parse_registered_at(customer.registered_at)
        if registered is None:
            return False
        if lower is not None and registered < lower:
            return False
        if upper is not None and registered > upper:
            return False
        return True

    return predicate


def _product_predicate(filters: FilterState) -> Optional[Predicate]:
    if not filters.selected_products:
        return None
    selected = {str(product).lower() for product in filters.selected_products}

    def predicate(customer: Customer) -> bool:
        return any(product.lower() in selected for product in customer.products_interested)

    return predicate


def within_radius(customer: Customer, center: GeoPoint, radius_meters: float) -> bool:
    if not customer.has_coordinates or not is_valid_coordinate(customer.latitude, customer.longitude):
        return False
    distance = haversine_meters(center.lat, center.lng, customer.latitude, customer.longitude)
    return distance <= radius_meters


def build_predicates(filters: FilterState) -> list[Predicate]:
    """Active attribute predicates in evaluation order (state, status, date, product)."""

    candidates = (
        _state_predicate(filters),
        _status_predicate(filters),
        _date_predicate(filters),
        _product_predicate(filters),
    )
    return [predicate for predicate in candidates if predicate is not None]


def apply_attribute_filters(customers: Iterable[Customer], filters: FilterState) -> list[Customer]:
    """Apply state, status, date and product predicates only."""

    predicates = build_predicates(filters)
    if not predicates:
        return list(customers)
    return [customer for customer in customers if all(predicate(customer) for predicate in predicates)]


def apply_radius_filter(customers: Iterable[Customer], center: GeoPoint, radius_miles: float) -> list[Customer]:
    radius_meters = miles_to_meters(radius_miles)
    return [customer for customer in customers if within_radius(customer, center, radius_meters)]


def apply_filters(
    customers: Sequence[Customer],
    filters: FilterState,
    *,
    center: Optional[GeoPoint] = None,
) -> list[Customer]:
    """Return the customers passing every active predicate.

    The radius predicate is active only when ``center`` (the resolved postal
    code) is given. Input records are never modified.
    """

    result = apply_attribute_filters(customers, filters)
    if center is not None:
        result = apply_radius_filter(result, center, filters.radius_miles)
    logger.debug(f"Filtered {len(customers)} customers down to {len(result)}")
    return result


def filter_options(customers: Sequence[Customer], known_products: Sequence[Product]) -> FilterOptions:
    """Derive selectable options: states present in the data and the catalog's product names."""

    states = sorted({customer.state for customer in customers if customer.state})
    products = [product.name for product in known_products]
    return FilterOptions(states=states, products=products)
