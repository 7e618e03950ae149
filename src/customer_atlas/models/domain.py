"""Domain models for customers, products and map filter state."""

from dataclasses import dataclass, field
from typing import Optional

CUSTOMER_STATUSES = ("lead", "prospect", "customer")
DEFAULT_STATUS = "new"
UNKNOWN_STATE = "XX"
PLACEHOLDER_POSTAL_CODE = "00000"


@dataclass(slots=True, frozen=True)
class GeoPoint:
    """A WGS84 coordinate in degrees."""

    lat: float
    lng: float


@dataclass(slots=True, frozen=True)
class Product:
    """Entry of the external product catalog."""

    id: str
    name: str
    description: Optional[str] = None


@dataclass(slots=True, frozen=True)
class Customer:
    """Canonical customer record used by every map and filter computation."""

    id: str
    customer_id: str
    name: str
    company: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    city: Optional[str]
    state: str
    postal_code: str
    latitude: Optional[float]
    longitude: Optional[float]
    products_interested: tuple[str, ...]
    registered_at: str
    status: str
    customer_type: str = "customer"
    source_system: str = "unknown"

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True)
class FilterState:
    """Mutable filter selections owned by the UI layer.

    Filters never modify customer records; they are applied functionally by
    :func:`customer_atlas.services.filters.engine.apply_filters`.
    """

    selected_states: list[str] = field(default_factory=list)
    selected_products: list[str] = field(default_factory=list)
    statuses: set[str] = field(default_factory=set)
    date_from: str = ""
    date_to: str = ""
    postal_code: str = ""
    radius_miles: float = 25.0

    def reset(self, *, radius_miles: float = 25.0) -> None:
        """Clear every selection in one update."""
        (
            self.selected_states,
            self.selected_products,
            self.statuses,
            self.date_from,
            self.date_to,
            self.postal_code,
            self.radius_miles,
        ) = ([], [], set(), "", "", "", radius_miles)

    @property
    def is_empty(self) -> bool:
        return not (
            self.selected_states
            or self.selected_products
            or self.statuses
            or self.date_from.strip()
            or self.date_to.strip()
            or self.postal_code.strip()
        )
