"""Customer filter engine."""

from .dates import parse_flexible_date, parse_registered_at, resolve_date_bounds
from .engine import (
    FilterOptions,
    apply_attribute_filters,
    apply_filters,
    apply_radius_filter,
    filter_options,
    within_radius,
)

__all__ = [
    "FilterOptions",
    "apply_attribute_filters",
    "apply_filters",
    "apply_radius_filter",
    "filter_options",
    "within_radius",
    "parse_flexible_date",
    "parse_registered_at",
    "resolve_date_bounds",
]
