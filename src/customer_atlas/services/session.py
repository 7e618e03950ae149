"""Coordinator that keeps filters, layers and the radius search in step."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from ..config import settings
from ..data import customers_repository
from ..models.domain import Customer, FilterState, GeoPoint, Product
from .customers import compute_customer_stats, normalize_customers
from .features.builder import FeatureBuildResult, to_features
from .filters.engine import FilterOptions, apply_attribute_filters, apply_filters, apply_radius_filter, filter_options
from .geocoding.client import GeocoderClient, GeocodingError
from .layers.manager import LayerManager, SelectionCallback, ViewMode
from .map_engine.base import MapEngine
from .products.classifier import DEFAULT_PRODUCTS, ProductClassifier
from .radius.controller import RadiusController

logger = logging.getLogger(__name__)

CustomerFetcher = Callable[[], Awaitable[Sequence[dict]]]
ProductFetcher = Callable[[], Awaitable[Sequence[Product]]]

_FILTER_FIELDS = {"selected_states", "selected_products", "statuses", "date_from", "date_to"}


class MapSession:
    """One user's map: loaded data, current filters and what is displayed.

    Filtering and feature building are synchronous and re-run on every
    change. Network work (customer fetch, product fetch, geocoding) is
    awaited and never blocks a recompute.
    """

    def __init__(
        self,
        engine: MapEngine | None = None,
        *,
        geocoder: GeocoderClient | None = None,
        view_mode: ViewMode = "admin",
        on_select: SelectionCallback | None = None,
        fetch_customers: CustomerFetcher | None = None,
        fetch_products: ProductFetcher | None = None,
    ) -> None:
        self.view_mode = view_mode
        self.on_select = on_select
        self.layers = LayerManager(engine) if engine is not None else None
        self._fetch_customers = fetch_customers or customers_repository.fetch_customers
        self._fetch_products = fetch_products or customers_repository.fetch_products

        self.filters = FilterState(radius_miles=settings.default_radius_miles)
        self.radius = RadiusController(
            geocoder or GeocoderClient(),
            count_within=self._count_within,
            on_camera_move=self._move_camera,
            radius_miles=self.filters.radius_miles,
        )

        self.customers: list[Customer] = []
        self.products: list[Product] = list(DEFAULT_PRODUCTS)
        self.classifier = ProductClassifier(self.products)
        self.filtered: list[Customer] = []
        self.features = FeatureBuildResult()
        self.last_error: Optional[Exception] = None
        self._postal_task: Optional[asyncio.Task] = None

    # loading -------------------------------------------------------------

    async def start(self) -> None:
        """Wait for the map, wire click handlers, then load data."""
        if self.layers is not None:
            await self.layers.wait_until_ready()
            self.layers.attach_handlers(view_mode=self.view_mode, on_select=self.on_select)
        await self.load()

    async def _load_customers(self) -> list[Customer]:
        try:
            raw = await self._fetch_customers()
        except (ConnectionError, FileNotFoundError, ValueError) as exc:
            logger.error(f"Error loading customers: {exc}")
            self.last_error = exc
            return []
        return normalize_customers(raw)

    async def _load_products(self) -> list[Product]:
        try:
            products = list(await self._fetch_products())
        except Exception as exc:
            logger.warning(f"Error fetching products, using defaults: {exc}")
            return list(DEFAULT_PRODUCTS)
        return products or list(DEFAULT_PRODUCTS)

    async def load(self) -> None:
        self.last_error = None
        customers, products = await asyncio.gather(self._load_customers(), self._load_products())
        self.customers = customers
        self.products = products
        self.classifier = ProductClassifier(products)
        logger.info(f"Loaded {len(customers)} customers and {len(products)} products")
        self.recompute()

    async def refresh(self) -> None:
        """Reload the dataset, discarding radius work started against the old one."""
        self.radius.cancel_pending()
        if self._postal_task is not None and not self._postal_task.done():
            self._postal_task.cancel()
        await self.load()
        if self.filters.postal_code.strip():
            await self.set_postal_code(self.filters.postal_code)

    # filters -------------------------------------------------------------

    def update_filters(self, **changes) -> None:
        """Apply attribute filter changes (states, products, statuses, dates)."""
        unknown = set(changes) - _FILTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown filter fields: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            if name == "statuses":
                value = set(value)
            elif name in ("selected_states", "selected_products"):
                value = list(value)
            setattr(self.filters, name, value)
        self.recompute()

    def reset_filters(self) -> None:
        self.filters.reset(radius_miles=settings.default_radius_miles)
        self.radius.reset()
        self.radius.radius_miles = self.filters.radius_miles
        self.recompute()

    async def set_postal_code(self, postal_code: str) -> Optional[GeoPoint]:
        self.filters.postal_code = postal_code or ""
        try:
            return await self.radius.resolve_center(self.filters.postal_code)
        except GeocodingError as exc:
            self.last_error = exc
            raise
        finally:
            self.recompute()

    def schedule_postal_code(self, postal_code: str) -> asyncio.Task:
        """Debounced variant of :meth:`set_postal_code` for keystroke input."""
        if self._postal_task is not None and not self._postal_task.done():
            self._postal_task.cancel()
        self._postal_task = asyncio.ensure_future(self.set_postal_code(postal_code))
        return self._postal_task

    def set_radius(self, radius_miles: float) -> None:
        self.filters.radius_miles = float(radius_miles)
        self.radius.set_radius(radius_miles)
        self.recompute()

    # derived state -------------------------------------------------------

    def _count_within(self, center: GeoPoint, radius_miles: float) -> int:
        candidates = apply_attribute_filters(self.customers, self.filters)
        return len(apply_radius_filter(candidates, center, radius_miles))

    def _move_camera(self, center: GeoPoint, zoom: float) -> None:
        if self.layers is not None:
            self.layers.fly_to(center, zoom)

    def recompute(self) -> None:
        self.filtered = apply_filters(self.customers, self.filters, center=self.radius.center)
        self.features = to_features(self.filtered, self.classifier)
        self.radius.recount()
        if self.layers is not None:
            self.layers.update(self.features.features)

    @property
    def displayed(self) -> list[dict]:
        return list(self.features.features)

    @property
    def radius_count(self) -> int:
        return self.radius.count

    @property
    def options(self) -> FilterOptions:
        return filter_options(self.customers, self.products)

    def stats(self) -> dict:
        return compute_customer_stats(self.customers, self.classifier)
