"""Customer analytics helpers."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from ...models.domain import Customer
from ..geospatial import is_valid_coordinate
from ..products.classifier import ProductClassifier


def compute_customer_stats(
    customers: Sequence[Customer],
    classifier: ProductClassifier,
    *,
    top_n: int = 5,
) -> dict:
    total_customers = len(customers)

    status_counts: Counter[str] = Counter()
    state_counts: Counter[str] = Counter()
    product_counts: Counter[str] = Counter()
    plotted = 0
    invalid_coordinates = 0

    for customer in customers:
        status_counts[customer.status] += 1
        state_counts[customer.state] += 1
        product_counts[classifier.classify(customer.products_interested).type] += 1
        if not customer.has_coordinates:
            continue
        if is_valid_coordinate(customer.latitude, customer.longitude):
            plotted += 1
        else:
            invalid_coordinates += 1

    missing_coordinates = total_customers - plotted - invalid_coordinates
    missing_percentage = 0.0
    if total_customers:
        missing_percentage = round(((total_customers - plotted) / total_customers) * 100, 1)

    top_states = [
        {"state": state, "customers": count}
        for state, count in sorted(state_counts.items(), key=lambda item: (-item[1], item[0]))[:top_n]
    ]

    return {
        "totalCustomers": total_customers,
        "plottedCustomers": plotted,
        "missingCoordinates": missing_coordinates,
        "invalidCoordinates": invalid_coordinates,
        "unplottedPercentage": missing_percentage,
        "statusCounts": dict(sorted(status_counts.items())),
        "productTypeCounts": dict(sorted(product_counts.items(), key=lambda item: (-item[1], item[0]))),
        "topStates": top_states,
    }


def list_missing_coordinates(customers: Sequence[Customer], limit: int = 10) -> list[dict]:
    """Sample of customers that cannot be plotted."""

    sample: list[dict] = []
    for customer in customers:
        if is_valid_coordinate(customer.latitude, customer.longitude):
            continue
        sample.append(
            {
                "id": customer.id,
                "name": customer.name,
                "city": customer.city,
                "state": customer.state,
                "postal_code": customer.postal_code,
                "latitude": customer.latitude,
                "longitude": customer.longitude,
            }
        )
        if len(sample) >= limit:
            break
    return sample
