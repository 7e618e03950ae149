"""Async HTTP client that turns postal codes into coordinates."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

import httpx

from ...config import settings
from ...models.domain import GeoPoint

logger = logging.getLogger(__name__)

HEALTH_CHECK_POSTAL_CODE = "10001"
_NON_DIGITS = re.compile(r"\D")


class GeocodingError(ConnectionError):
    """The geocoding services could not be reached or returned server errors."""


@dataclass(slots=True, frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: str
    city: Optional[str] = None
    state: Optional[str] = None
    provider: str = "zippopotam"

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)


def clean_postal_code(code: Any) -> Optional[str]:
    """Strip everything but digits; only exactly five remaining digits are a valid code."""
    if code is None:
        return None
    digits = _NON_DIGITS.sub("", str(code))
    return digits if len(digits) == 5 else None


class GeocoderClient:
    def __init__(
        self,
        base_url: str | None = None,
        nominatim_base_url: str | None = None,
        country: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        use_nominatim: bool = True,
    ) -> None:
        self.base_url = (base_url or settings.geocoder_base_url).rstrip("/")
        if not self.base_url:
            raise ValueError("Geocoder base URL is not configured.")
        nominatim = nominatim_base_url if nominatim_base_url is not None else settings.nominatim_base_url
        self.nominatim_base_url = nominatim.rstrip("/") if (nominatim and use_nominatim) else None
        self.country = (country or settings.geocoder_country).lower()
        self.timeout = timeout if timeout is not None else settings.geocoder_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.geocoder_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.geocoder_backoff_seconds
        self.user_agent = user_agent or settings.geocoder_user_agent
        self._transport = transport
        self._cache: dict[str, GeocodeResult] = {}

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _get_json(
        self, client: httpx.AsyncClient, url: str, params: dict | None = None, *, service: str
    ) -> Optional[Any]:
        """GET ``url`` with retries. Returns None on 404."""
        attempt = 0
        while True:
            try:
                response = await client.get(url, params=params)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code < 500 and status_code != 429:
                    raise GeocodingError(f"{service} rejected the request ({status_code}).") from e
                attempt += 1
                if attempt > self.max_retries:
                    raise GeocodingError(f"{service} error {status_code} after {self.max_retries} retries.") from e
                wait_time = self.backoff_seconds * attempt
                logger.debug(f"{service} returned {status_code}, retrying in {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
            except httpx.TimeoutException as e:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"{service} request timed out after {self.max_retries} attempts: {e}")
                    raise GeocodingError(f"{service} timed out.") from e
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"{service} timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                await asyncio.sleep(wait_time)
            except (httpx.TransportError, OSError) as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise GeocodingError(f"Failed to connect to {service} at {url}: {e}") from e
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"{service} network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                await asyncio.sleep(wait_time)
            except ValueError as e:
                raise GeocodingError(f"{service} returned an unreadable response: {e}") from e

    async def _zippopotam(self, client: httpx.AsyncClient, code: str, country: str) -> Optional[GeocodeResult]:
        data = await self._get_json(client, f"{self.base_url}/{country}/{code}", service="Zippopotam")
        places = (data or {}).get("places") if isinstance(data, dict) else None
        if not places:
            return None
        place = places[0]
        try:
            latitude = float(place["latitude"])
            longitude = float(place["longitude"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Zippopotam returned a malformed place for {code}: {place}")
            return None
        city = place.get("place name")
        state = place.get("state abbreviation")
        return GeocodeResult(
            latitude=latitude,
            longitude=longitude,
            display_name=f"{city}, {state} {code}",
            city=city,
            state=state,
            provider="zippopotam",
        )

    async def _nominatim(self, client: httpx.AsyncClient, code: str, country: str) -> Optional[GeocodeResult]:
        params = {"postalcode": code, "countrycodes": country, "format": "json", "limit": 1}
        data = await self._get_json(client, f"{self.nominatim_base_url}/search", params, service="Nominatim")
        if not isinstance(data, list) or not data:
            return None
        match = data[0]
        try:
            latitude = float(match["lat"])
            longitude = float(match["lon"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Nominatim returned a malformed match for {code}: {match}")
            return None
        return GeocodeResult(
            latitude=latitude,
            longitude=longitude,
            display_name=match.get("display_name") or code,
            provider="nominatim",
        )

    async def geocode_postal_code(self, code: Any, country: str | None = None) -> Optional[GeocodeResult]:
        """Resolve a postal code, trying Zippopotam first and Nominatim second.

        Returns None for invalid codes and for codes neither service knows.
        Raises GeocodingError only when every service failed.
        """
        clean = clean_postal_code(code)
        if clean is None:
            logger.debug(f"Ignoring invalid postal code {code!r}")
            return None
        country = (country or self.country).lower()
        cache_key = f"{country}:{clean}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Using cached geocode for {clean}")
            return cached

        strategies = [self._zippopotam]
        if self.nominatim_base_url:
            strategies.append(self._nominatim)

        errors: list[GeocodingError] = []
        answered = False
        async with self._get_client() as client:
            for strategy in strategies:
                try:
                    result = await strategy(client, clean, country)
                except GeocodingError as exc:
                    logger.warning(f"Geocoding {clean} failed: {exc}")
                    errors.append(exc)
                    continue
                answered = True
                if result is not None:
                    logger.info(f"Geocoded {clean} with {result.provider}: {result.display_name}")
                    self._cache[cache_key] = result
                    return result

        if errors and not answered:
            raise GeocodingError(f"Could not geocode postal code {clean}: {errors[-1]}") from errors[-1]
        logger.info(f"No geocoding result for postal code {clean}")
        return None

    async def check_health(self) -> bool:
        """Check the primary geocoder by resolving a well-known postal code."""
        try:
            async with self._get_client() as client:
                response = await client.get(f"{self.base_url}/{self.country}/{HEALTH_CHECK_POSTAL_CODE}")
                response.raise_for_status()
                data = response.json()
            return bool(isinstance(data, dict) and data.get("places"))
        except httpx.HTTPError:
            return False
        except ValueError:
            return False


@lru_cache()
def get_geocoder_client() -> GeocoderClient:
    """Shared client so repeated lookups hit the in-memory cache."""
    return GeocoderClient()
