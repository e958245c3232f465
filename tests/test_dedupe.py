from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest

from jobdedup.core.config import DedupConfig
from jobdedup.core.errors import InvalidPostingError
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.engine import DedupService
from jobdedup.services.fingerprint import band_keys, bits_to_hex
from jobdedup.services.location import LocationInfo

DESCRIPTION = (
    "Prepare meals on the line, keep the station clean and support the kitchen team "
    "during busy dinner service. Weekend availability required."
)


def _posting(job_id: str, **overrides: Any) -> dict[str, Any]:
    record = {
        "id": job_id,
        "company": "Acme Inc.",
        "title": "Line Cook",
        "description": DESCRIPTION,
        "location": "Austin, TX",
    }
    record.update(overrides)
    return record


def test_resubmitted_posting_is_a_zero_distance_duplicate(
    make_service: Callable[..., DedupService], geocoder
) -> None:
    async def run() -> None:
        service = make_service(geocoder=geocoder)

        first = await service.process_job(_posting("a"))
        second = await service.process_job(_posting("b"))

        assert first.is_duplicate is False
        assert first.indexed is True
        assert second.is_duplicate is True
        assert second.duplicate_of == "a"
        assert second.hamming_distance == 0
        assert second.fingerprint == first.fingerprint
        assert second.indexed is False
        assert await service.get_job_data("b") is None
        assert service.metrics.as_dict()["duplicates"] == 1

    asyncio.run(run())


def test_same_id_resubmission_refreshes_instead_of_matching_itself(
    make_service: Callable[..., DedupService], geocoder
) -> None:
    async def run() -> None:
        service = make_service(geocoder=geocoder)

        await service.process_job(_posting("a"))
        again = await service.process_job(_posting("a"))

        assert again.is_duplicate is False
        assert again.indexed is True

    asyncio.run(run())


def test_legal_suffix_and_punctuation_variants_are_duplicates(
    make_service: Callable[..., DedupService], geocoder
) -> None:
    async def run() -> None:
        service = make_service(geocoder=geocoder)

        await service.process_job(_posting("a", company="Acme", title="Cook"))
        verdict = await service.process_job(_posting("b", company="Acme Inc.", title="Cook!!"))

        assert verdict.is_duplicate is True
        assert verdict.duplicate_of == "a"

    asyncio.run(run())


def test_distant_locations_veto_identical_text(make_service: Callable[..., DedupService], geocoder) -> None:
    async def run() -> None:
        service = make_service(geocoder=geocoder)

        await service.process_job(_posting("austin", location="Austin, TX"))
        verdict = await service.process_job(_posting("dallas", location="Dallas, TX"))

        assert verdict.is_duplicate is False
        assert verdict.indexed is True
        assert service.metrics.location_vetoes == 1

    asyncio.run(run())


def test_nearby_locations_do_not_veto(make_service: Callable[..., DedupService], geocoder) -> None:
    async def run() -> None:
        service = make_service(geocoder=geocoder)

        await service.process_job(_posting("a", location="Origin Point"))
        verdict = await service.process_job(_posting("b", location="North Point"))

        assert verdict.is_duplicate is True

    asyncio.run(run())


def test_gray_zone_is_judged_on_text_alone(make_service: Callable[..., DedupService], geocoder) -> None:
    async def run() -> None:
        service = make_service(geocoder=geocoder)

        await service.process_job(_posting("a", location="Origin Point"))
        same_text = await service.process_job(_posting("b", location="Gray Point"))
        other_text = await service.process_job(
            _posting(
                "c",
                company="Globex",
                title="Accountant",
                description="Reconcile ledgers and prepare quarterly tax filings for clients.",
                location="Gray Point",
            )
        )

        assert same_text.is_duplicate is True
        assert same_text.duplicate_of == "a"
        assert other_text.is_duplicate is False
        assert service.metrics.location_vetoes == 0

    asyncio.run(run())


def test_remote_postings_match_without_coordinates(make_service: Callable[..., DedupService]) -> None:
    async def run() -> None:
        service = make_service()

        await service.process_job(_posting("a", location="Remote"))
        verdict = await service.process_job(_posting("b", location="Work from home"))

        assert verdict.is_duplicate is True
        assert verdict.location == LocationInfo(lat=None, lng=None, type="remote")

    asyncio.run(run())


def test_unresolved_physical_locations_fall_back_to_text(make_service: Callable[..., DedupService]) -> None:
    async def run() -> None:
        service = make_service()

        await service.process_job(_posting("a", location="Austin, TX"))
        verdict = await service.process_job(_posting("b", location="Dallas, TX"))

        assert verdict.is_duplicate is True
        assert service.metrics.errors == 2

    asyncio.run(run())


def test_skip_index_reports_without_writing(make_service: Callable[..., DedupService]) -> None:
    async def run() -> None:
        service = make_service()

        verdict = await service.process_job(PostingIn(**_posting("a", location="Remote")), skip_index=True)

        assert verdict.is_duplicate is False
        assert verdict.indexed is False
        assert len(verdict.fingerprint) == 16
        assert (await service.check_existing_jobs(["a"])).new == ["a"]
        assert service.metrics.processed == 1
        assert service.metrics.indexed == 0

    asyncio.run(run())


@pytest.mark.parametrize("bad", [{"title": "Cook"}, {"id": "", "title": "Cook"}, {"id": "   "}])
def test_posting_without_id_is_rejected_before_io(make_service: Callable[..., DedupService], bad: dict) -> None:
    async def run() -> DedupService:
        service = make_service()
        with pytest.raises(InvalidPostingError, match="posting must have an id"):
            await service.process_job(bad)
        return service

    service = asyncio.run(run())
    assert service.metrics.processed == 0


def test_numeric_ids_are_accepted(make_service: Callable[..., DedupService]) -> None:
    async def run() -> str:
        verdict = await make_service().process_job(_posting(42, location="Remote"))
        return verdict.posting_id

    assert asyncio.run(run()) == "42"


def _flip(bits: list[int], positions: list[int]) -> list[int]:
    flipped = list(bits)
    for position in positions:
        flipped[position] = 1 - flipped[position]
    return flipped


def test_closest_strategy_prefers_smallest_distance(make_service: Callable[..., DedupService]) -> None:
    async def run() -> None:
        service = make_service(config=DedupConfig(match_strategy="closest"))
        query = PostingIn(**_posting("query", location="Remote"))
        fingerprint = service.generator.generate(query)
        remote = LocationInfo(lat=None, lng=None, type="remote")

        # Flips stay outside band 0 so every stored record shares the query's first bucket.
        for job_id, positions in (("a-far", [20, 40, 60]), ("b-near", [33]), ("c-near", [50])):
            bits = _flip(fingerprint.bits, positions)
            stored = replace(fingerprint, bits=bits, hash=bits_to_hex(bits), bands=band_keys(bits, 4))
            await service.index.index_job(job_id, stored, remote)

        verdict = await service.process_job(query)

        assert verdict.is_duplicate is True
        assert verdict.duplicate_of == "b-near"
        assert verdict.hamming_distance == 1

    asyncio.run(run())


def test_candidates_beyond_threshold_are_not_duplicates(make_service: Callable[..., DedupService]) -> None:
    async def run() -> None:
        service = make_service(config=DedupConfig(duplicate_threshold=2))
        query = PostingIn(**_posting("query", location="Remote"))
        fingerprint = service.generator.generate(query)

        bits = _flip(fingerprint.bits, [20, 30, 40])
        stored = replace(fingerprint, bits=bits, hash=bits_to_hex(bits), bands=band_keys(bits, 4))
        await service.index.index_job("far", stored, LocationInfo(lat=None, lng=None, type="remote"))

        verdict = await service.process_job(query)

        assert verdict.is_duplicate is False
        assert verdict.indexed is True

    asyncio.run(run())
