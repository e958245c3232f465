from __future__ import annotations

import asyncio
from datetime import date
from typing import Any

import httpx
import pytest

from jobdedup.services.geocoder import (
    GeocodeResult,
    GeocoderQuotaExceededError,
    GeocodingError,
    MapboxGeocoder,
)

BASE_URL = "https://geo.example.test/geocoding/v5/mapbox.places"


def _geocoder(handler: Any, **kwargs: Any) -> MapboxGeocoder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MapboxGeocoder(
        "token-123",
        base_url=BASE_URL,
        requests_per_second=0,
        client=client,
        **kwargs,
    )


def test_mapbox_geocoder_parses_first_feature() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            status_code=200,
            json={
                "features": [
                    {"center": [-97.7431, 30.2672], "relevance": 0.95, "place_name": "Austin, Texas, United States"}
                ]
            },
            request=request,
        )

    async def run() -> GeocodeResult | None:
        geocoder = _geocoder(handler)
        try:
            return await geocoder.geocode("Austin, TX")
        finally:
            await geocoder.aclose()

    result = asyncio.run(run())
    assert result == GeocodeResult(
        lat=30.2672,
        lng=-97.7431,
        confidence="high",
        place_name="Austin, Texas, United States",
        relevance=0.95,
    )
    request = seen[0]
    assert request.url.path == "/geocoding/v5/mapbox.places/Austin, TX.json"
    assert request.url.params["access_token"] == "token-123"
    assert request.url.params["limit"] == "1"
    assert request.url.params["types"] == "place,locality,address,poi"


@pytest.mark.parametrize(("relevance", "confidence"), [(0.95, "high"), (0.7, "medium"), (0.3, "low")])
def test_mapbox_geocoder_confidence_bands(relevance: float, confidence: str) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code=200,
            json={"features": [{"center": [-96.797, 32.7767], "relevance": relevance}]},
            request=request,
        )

    result = asyncio.run(_geocoder(handler).geocode("Dallas"))
    assert result is not None
    assert result.confidence == confidence


def test_mapbox_geocoder_returns_none_without_features() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"features": []}, request=request)

    assert asyncio.run(_geocoder(handler).geocode("Atlantis")) is None


def test_mapbox_geocoder_raises_on_error_status() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=401, json={"message": "Not Authorized"}, request=request)

    with pytest.raises(GeocodingError, match="401"):
        asyncio.run(_geocoder(handler).geocode("Austin, TX"))


def test_mapbox_geocoder_enforces_daily_limit_and_rolls_over() -> None:
    calls = 0
    current_day = [date(2026, 3, 1)]

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(status_code=200, json={"features": []}, request=request)

    geocoder = _geocoder(handler, daily_limit=2, today=lambda: current_day[0])

    async def run() -> None:
        await geocoder.geocode("a")
        await geocoder.geocode("b")
        assert geocoder.usage()["remaining_today"] == 0
        with pytest.raises(GeocoderQuotaExceededError):
            await geocoder.geocode("c")

        current_day[0] = date(2026, 3, 2)
        await geocoder.geocode("c")

    asyncio.run(run())
    assert calls == 3
    assert geocoder.usage()["requests_today"] == 1
    assert geocoder.usage()["current_day"] == "2026-03-02"


def test_mapbox_geocoder_skips_blank_locations() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert asyncio.run(_geocoder(handler).geocode("   ")) is None


def test_mapbox_geocoder_requires_api_key() -> None:
    with pytest.raises(ValueError):
        MapboxGeocoder("")
