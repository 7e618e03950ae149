"""Customer service helpers."""

from .normalizer import customer_to_record, normalize_customer, normalize_customers
from .stats import compute_customer_stats, list_missing_coordinates

__all__ = [
    "normalize_customer",
    "normalize_customers",
    "customer_to_record",
    "compute_customer_stats",
    "list_missing_coordinates",
]
