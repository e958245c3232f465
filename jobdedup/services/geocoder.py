from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging
import time
from typing import Any, Protocol
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

MAPBOX_PLACES_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
MAPBOX_PLACE_TYPES = "place,locality,address,poi"


class GeocodingError(Exception):
    """Raised when a location could not be geocoded because of a provider failure."""


class GeocoderQuotaExceededError(GeocodingError):
    """Raised when the daily request cap has been used up."""


@dataclass(slots=True)
class GeocodeResult:
    lat: float | None
    lng: float | None
    confidence: str | None = None
    place_name: str | None = None
    relevance: float | None = None


class Geocoder(Protocol):
    async def geocode(self, raw_location: str) -> GeocodeResult | Mapping[str, Any] | None:
        """Resolve free text to coordinates; ``None`` when nothing matched. Raises on failure.

        A plain ``{"lat": ..., "lng": ...}`` mapping is accepted in place of a ``GeocodeResult``.
        """
        ...


class MapboxGeocoder:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = MAPBOX_PLACES_URL,
        requests_per_second: float = 10.0,
        daily_limit: int = 1000,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Mapbox API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self.daily_limit = max(0, daily_limit)
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._current_day = self._today()
        self._requests_today = 0
        self._last_request_at = 0.0
        self._rate_lock = asyncio.Lock()

    async def geocode(self, raw_location: str) -> GeocodeResult | None:
        location = (raw_location or "").strip()
        if not location:
            return None

        if self.daily_limit_reached():
            raise GeocoderQuotaExceededError(f"daily geocoding limit reached ({self.daily_limit})")

        await self._wait_for_rate_limit()
        response = await self._get_client().get(
            f"{self.base_url}/{quote(location, safe='')}.json",
            params={"access_token": self.api_key, "limit": 1, "types": MAPBOX_PLACE_TYPES},
        )
        self._requests_today += 1

        if response.status_code != 200:
            raise GeocodingError(f"mapbox geocoding failed with status {response.status_code}")

        features = response.json().get("features") or []
        if not features:
            logger.info("mapbox found no match for location=%r", location)
            return None
        return _feature_to_result(features[0])

    def daily_limit_reached(self) -> bool:
        self._roll_day()
        if self.daily_limit == 0:
            return False
        return self._requests_today >= self.daily_limit

    def usage(self) -> dict[str, Any]:
        self._roll_day()
        return {
            "requests_today": self._requests_today,
            "daily_limit": self.daily_limit,
            "remaining_today": (
                max(0, self.daily_limit - self._requests_today) if self.daily_limit > 0 else None
            ),
            "current_day": self._current_day.isoformat(),
        }

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    def _roll_day(self) -> None:
        today = self._today()
        if today != self._current_day:
            self._current_day = today
            self._requests_today = 0

    async def _wait_for_rate_limit(self) -> None:
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_request_at = time.monotonic()


def _feature_to_result(feature: dict[str, Any]) -> GeocodeResult:
    center = feature.get("center") or []
    if len(center) != 2:
        return GeocodeResult(lat=None, lng=None, place_name=feature.get("place_name"))
    lng, lat = float(center[0]), float(center[1])

    relevance = feature.get("relevance")
    confidence = "medium"
    if isinstance(relevance, (int, float)):
        if relevance >= 0.9:
            confidence = "high"
        elif relevance < 0.5:
            confidence = "low"

    return GeocodeResult(
        lat=lat,
        lng=lng,
        confidence=confidence,
        place_name=feature.get("place_name"),
        relevance=float(relevance) if isinstance(relevance, (int, float)) else None,
    )
