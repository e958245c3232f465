from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from jobdedup.core.config import DedupConfig
from jobdedup.services.engine import DedupService
from jobdedup.services.geocoder import GeocodeResult
from jobdedup.services.store import RedisKeyedStore

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

PLACES: dict[str, tuple[float, float]] = {
    "austin, tx": (30.2672, -97.7431),
    "round rock, tx": (30.5083, -97.6789),
    "dallas, tx": (32.7767, -96.7970),
    "north point": (30.1, -97.0),
    "origin point": (30.0, -97.0),
    "gray point": (30.36, -97.0),
    "far point": (31.0, -97.0),
}


class FakeGeocoder:
    def __init__(self, places: dict[str, tuple[float, float]] | None = None) -> None:
        self.places = PLACES if places is None else places
        self.calls: list[str] = []

    async def geocode(self, raw_location: str) -> GeocodeResult | None:
        self.calls.append(raw_location)
        coords = self.places.get(" ".join(raw_location.lower().split()))
        if coords is None:
            return None
        return GeocodeResult(lat=coords[0], lng=coords[1], confidence="high")


class FailingGeocoder:
    def __init__(self) -> None:
        self.calls = 0

    async def geocode(self, raw_location: str) -> GeocodeResult | None:
        self.calls += 1
        raise RuntimeError("provider down")


@pytest.fixture
def redis_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def make_service(redis_server: FakeServer) -> Callable[..., DedupService]:
    """Build a service on the per-test fake server. Call it inside the running event loop."""

    def _make(
        *,
        config: DedupConfig | None = None,
        geocoder: Any = None,
        clock: Callable[[], datetime] | None = None,
        store_cls: type[RedisKeyedStore] = RedisKeyedStore,
    ) -> DedupService:
        client = FakeAsyncRedis(server=redis_server, decode_responses=True)
        return DedupService(
            store_cls(client),
            config=config,
            geocoder=geocoder,
            clock=clock or (lambda: FIXED_NOW),
        )

    return _make


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def failing_geocoder() -> FailingGeocoder:
    return FailingGeocoder()
