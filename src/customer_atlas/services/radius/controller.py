"""Debounced postal-code geocoding that drives the radius filter."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Literal, Optional

from ...config import settings
from ...models.domain import GeoPoint
from ..geocoding.client import GeocoderClient, GeocodingError, clean_postal_code
from ..geospatial import circle_feature, miles_to_meters, zoom_for_radius

logger = logging.getLogger(__name__)

RadiusStatus = Literal["idle", "resolved", "no_results", "invalid", "error"]
CountWithin = Callable[[GeoPoint, float], int]
CameraMove = Callable[[GeoPoint, float], None]


class RadiusController:
    """Owns the radius center resolved from a postal code.

    Every call to :meth:`resolve_center` starts a new generation; a request
    that completes after a newer one started is discarded, whatever order the
    responses arrive in.
    """

    def __init__(
        self,
        geocoder: GeocoderClient,
        *,
        count_within: CountWithin,
        on_camera_move: CameraMove | None = None,
        radius_miles: float | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.geocoder = geocoder
        self.count_within = count_within
        self.on_camera_move = on_camera_move
        self.radius_miles = radius_miles if radius_miles is not None else settings.default_radius_miles
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.geocode_debounce_seconds
        )

        self.postal_code = ""
        self.center: Optional[GeoPoint] = None
        self.count = 0
        self.zoom: Optional[float] = None
        self.status: RadiusStatus = "idle"
        self.display_name: Optional[str] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def generation(self) -> int:
        return self._generation

    def _clear(self, status: RadiusStatus) -> None:
        self.center = None
        self.count = 0
        self.zoom = None
        self.display_name = None
        self.status = status

    async def resolve_center(self, postal_code: str) -> Optional[GeoPoint]:
        """Geocode ``postal_code`` after the debounce delay and apply the result.

        Returns the resolved center, or None when the code is invalid, unknown
        or the request was superseded by a newer one.
        """
        self._generation += 1
        generation = self._generation
        self.postal_code = postal_code or ""

        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation:
            logger.debug(f"Postal code {postal_code!r} superseded before geocoding")
            return None

        if not self.postal_code.strip():
            self._clear("idle")
            return None
        if clean_postal_code(self.postal_code) is None:
            logger.info(f"Invalid postal code {postal_code!r}; radius filter not applied")
            self._clear("invalid")
            return None

        try:
            result = await self.geocoder.geocode_postal_code(self.postal_code)
        except GeocodingError as exc:
            if generation != self._generation:
                logger.debug(f"Discarding geocoding failure for superseded postal code {postal_code!r}: {exc}")
                return None
            self._clear("error")
            raise

        if generation != self._generation:
            logger.debug(f"Discarding stale geocoding result for {postal_code!r}")
            return None

        if result is None:
            logger.info(f"No geocoding results for postal code {postal_code!r}")
            self._clear("no_results")
            return None

        self.center = result.point
        self.display_name = result.display_name
        self.status = "resolved"
        self.recount()
        self._move_camera()
        return self.center

    def schedule(self, postal_code: str) -> asyncio.Task:
        """Start a debounced resolution, cancelling the one still waiting."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.ensure_future(self.resolve_center(postal_code))
        return self._task

    def cancel_pending(self) -> None:
        """Discard whatever request is in flight."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def set_radius(self, radius_miles: float) -> None:
        if radius_miles <= 0:
            raise ValueError("Radius must be positive.")
        self.radius_miles = float(radius_miles)
        if self.center is not None:
            self.recount()
            self._move_camera()

    def recount(self) -> int:
        self.count = self.count_within(self.center, self.radius_miles) if self.center is not None else 0
        return self.count

    def reset(self) -> None:
        self.cancel_pending()
        self.postal_code = ""
        self._clear("idle")

    def _move_camera(self) -> None:
        self.zoom = zoom_for_radius(self.radius_miles)
        if self.on_camera_move is not None and self.center is not None:
            self.on_camera_move(self.center, self.zoom)

    def circle_feature(self, segments: int = 64) -> Optional[dict]:
        if self.center is None:
            return None
        return circle_feature(self.center, miles_to_meters(self.radius_miles), segments)
