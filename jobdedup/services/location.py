from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
import re
from typing import Any, Literal

from jobdedup.services.geocoder import Geocoder
from jobdedup.services.keys import IndexKeys
from jobdedup.services.metrics import SessionMetrics
from jobdedup.services.store import KeyedStore

logger = logging.getLogger(__name__)

LocationType = Literal["remote", "physical", "unknown"]
ComparisonResult = Literal["SAME", "DIFFERENT", "UNKNOWN"]

EARTH_RADIUS_MILES = 3959.0
REMOTE_PATTERNS = (
    "remote",
    "work from home",
    "wfh",
    "telecommute",
    "virtual",
    "anywhere",
    "nationwide",
    "work from anywhere",
    "home based",
)
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(slots=True)
class LocationInfo:
    lat: float | None
    lng: float | None
    type: LocationType

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


@dataclass(slots=True)
class LocationParse:
    type: LocationType
    needs_geocoding: bool


@dataclass(slots=True)
class LocationComparison:
    result: ComparisonResult
    distance: float | None = None
    reason: str | None = None


def parse_location_type(raw_location: str | None) -> LocationParse:
    if not raw_location or not raw_location.strip():
        return LocationParse(type="unknown", needs_geocoding=False)
    normalized = raw_location.lower().strip()
    if any(pattern in normalized for pattern in REMOTE_PATTERNS):
        return LocationParse(type="remote", needs_geocoding=False)
    return LocationParse(type="physical", needs_geocoding=True)


def normalize_location_key(raw_location: str | None) -> str:
    if not raw_location:
        return ""
    return _WHITESPACE_RE.sub(" ", raw_location.lower().strip())


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def compare_locations(
    left: LocationInfo,
    right: LocationInfo,
    *,
    same_threshold: float = 15.0,
    different_threshold: float = 40.0,
) -> LocationComparison:
    if left.type == "remote" and right.type == "remote":
        return LocationComparison(result="SAME", reason="both_remote")
    if left.type == "remote" or right.type == "remote":
        return LocationComparison(result="UNKNOWN", reason="remote_vs_physical")
    if left.type == "unknown" or right.type == "unknown":
        return LocationComparison(result="UNKNOWN", reason="unknown_location")
    if not left.has_coordinates or not right.has_coordinates:
        return LocationComparison(result="UNKNOWN", reason="missing_coordinates")

    miles = haversine_miles(left.lat, left.lng, right.lat, right.lng)  # type: ignore[arg-type]
    if miles <= same_threshold:
        return LocationComparison(result="SAME", distance=miles)
    if miles >= different_threshold:
        return LocationComparison(result="DIFFERENT", distance=miles)
    return LocationComparison(result="UNKNOWN", distance=miles, reason="gray_zone")


def location_to_record(location: LocationInfo) -> dict[str, str]:
    return {
        "lat": "" if location.lat is None else repr(location.lat),
        "lng": "" if location.lng is None else repr(location.lng),
        "type": location.type,
    }


def location_from_record(row: Mapping[str, str] | None) -> LocationInfo:
    row = row or {}
    location_type = row.get("type")
    if location_type not in {"remote", "physical", "unknown"}:
        location_type = "unknown"
    if location_type != "physical":
        return LocationInfo(lat=None, lng=None, type=location_type)  # type: ignore[arg-type]

    lat = _as_float(row.get("lat"))
    lng = _as_float(row.get("lng"))
    if lat is None or lng is None:
        return LocationInfo(lat=None, lng=None, type="physical")
    return LocationInfo(lat=lat, lng=lng, type="physical")


class LocationResolver:
    """Classifies raw locations and geocodes physical ones through a store-backed cache.

    Geocoder problems never escape: the posting degrades to a physical
    location without coordinates, which the veto treats as not comparable.
    Store errors are not caught here.
    """

    def __init__(
        self,
        store: KeyedStore,
        keys: IndexKeys,
        metrics: SessionMetrics,
        *,
        geocoder: Geocoder | None = None,
        geo_ttl_seconds: int,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.keys = keys
        self.metrics = metrics
        self.geocoder = geocoder
        self.geo_ttl_seconds = geo_ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def resolve(self, raw_location: str | None) -> LocationInfo:
        parsed = parse_location_type(raw_location)
        if parsed.type != "physical":
            return LocationInfo(lat=None, lng=None, type=parsed.type)

        cache_key = self.keys.geo_key(normalize_location_key(raw_location))
        cached = await self.store.get_hash(cache_key)
        if cached:
            self.metrics.geo_cache_hits += 1
            return location_from_record({**cached, "type": cached.get("type") or "physical"})

        if self.geocoder is None:
            self.metrics.errors += 1
            logger.debug("no geocoder configured; location=%r left unresolved", raw_location)
            return LocationInfo(lat=None, lng=None, type="physical")

        try:
            result = await self.geocoder.geocode(raw_location or "")
            location = _location_from_geocode(result)
        except Exception as exc:
            self.metrics.errors += 1
            logger.warning("geocoding failed for location=%r: %s", raw_location, exc)
            return LocationInfo(lat=None, lng=None, type="physical")

        async with self.store.batch() as batch:
            batch.set_hash(
                cache_key,
                {
                    **location_to_record(location),
                    "resolvedAt": str(int(self._clock().timestamp() * 1000)),
                },
                ttl_seconds=self.geo_ttl_seconds,
            )
        self.metrics.geo_cache_misses += 1
        return location


def _location_from_geocode(result: Any) -> LocationInfo:
    """Accepts a ``GeocodeResult`` or a ``{"lat", "lng"}`` mapping; raises on unusable coordinates."""
    if result is None:
        return LocationInfo(lat=None, lng=None, type="physical")
    if isinstance(result, Mapping):
        lat, lng = result.get("lat"), result.get("lng")
    else:
        lat, lng = result.lat, result.lng
    if lat is None or lng is None:
        return LocationInfo(lat=None, lng=None, type="physical")

    lat, lng = float(lat), float(lng)
    if not (math.isfinite(lat) and math.isfinite(lng)) or abs(lat) > 90 or abs(lng) > 180:
        raise ValueError(f"coordinates out of range: lat={lat} lng={lng}")
    return LocationInfo(lat=lat, lng=lng, type="physical")


def _as_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None
