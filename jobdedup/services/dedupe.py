from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from opentelemetry import trace
from pydantic import ValidationError

from jobdedup.core.config import DedupConfig
from jobdedup.core.errors import InvalidPostingError
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.fingerprint import Fingerprint, FingerprintGenerator, hamming_distance
from jobdedup.services.index import FingerprintIndex
from jobdedup.services.location import LocationInfo, LocationResolver, compare_locations
from jobdedup.services.metrics import SessionMetrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class Verdict:
    posting_id: str
    is_duplicate: bool
    fingerprint: str
    duplicate_of: str | None = None
    hamming_distance: int | None = None
    indexed: bool | None = None
    location: LocationInfo | None = None


@dataclass(slots=True)
class _Match:
    candidate_id: str
    distance: int


def coerce_posting(posting: PostingIn | Mapping[str, Any]) -> PostingIn:
    if isinstance(posting, PostingIn):
        if not posting.id:
            raise InvalidPostingError("posting must have an id")
        return posting
    if not isinstance(posting, Mapping):
        raise InvalidPostingError(f"unsupported posting type: {type(posting).__name__}")
    try:
        return PostingIn.model_validate(dict(posting))
    except ValidationError as exc:
        if any(error["loc"][:1] == ("id",) for error in exc.errors()):
            raise InvalidPostingError("posting must have an id") from exc
        raise InvalidPostingError(str(exc)) from exc


class DuplicateResolver:
    """Location veto plus Hamming thresholding over band-retrieved candidates.

    With the ``first`` strategy the first candidate within threshold wins, in
    whatever order the store returns bucket members, so ``duplicate_of`` is
    not guaranteed to be the nearest posting. ``closest`` scores every
    candidate and keeps the minimum distance.
    """

    def __init__(
        self,
        config: DedupConfig,
        index: FingerprintIndex,
        locations: LocationResolver,
        generator: FingerprintGenerator,
        metrics: SessionMetrics,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.index = index
        self.locations = locations
        self.generator = generator
        self.metrics = metrics
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def process_job(
        self,
        posting: PostingIn | Mapping[str, Any],
        *,
        skip_index: bool = False,
    ) -> Verdict:
        job = coerce_posting(posting)
        self.metrics.processed += 1

        with tracer.start_as_current_span("dedup.process_job") as span:
            span.set_attribute("job.id", job.id)
            location = await self.locations.resolve(job.location)
            fingerprint = self.generator.generate(job, now=self._clock())

            candidates = await self.index.find_candidates(fingerprint.bands)
            candidates.discard(job.id)
            span.set_attribute("dedup.candidates", len(candidates))

            match = await self._find_match(fingerprint, location, candidates)
            if match is not None:
                self.metrics.duplicates += 1
                span.set_attribute("dedup.duplicate_of", match.candidate_id)
                logger.info(
                    "duplicate posting id=%s duplicate_of=%s hamming_distance=%s",
                    job.id,
                    match.candidate_id,
                    match.distance,
                )
                return Verdict(
                    posting_id=job.id,
                    is_duplicate=True,
                    fingerprint=fingerprint.hash,
                    duplicate_of=match.candidate_id,
                    hamming_distance=match.distance,
                    indexed=False,
                    location=location,
                )

            if not skip_index:
                await self.index.index_job(job.id, fingerprint, location)
                self.metrics.indexed += 1

            return Verdict(
                posting_id=job.id,
                is_duplicate=False,
                fingerprint=fingerprint.hash,
                indexed=not skip_index,
                location=location,
            )

    async def _find_match(
        self,
        fingerprint: Fingerprint,
        location: LocationInfo,
        candidates: set[str],
    ) -> _Match | None:
        best: _Match | None = None
        ordered = sorted(candidates) if self.config.match_strategy == "closest" else candidates

        for candidate_id in ordered:
            data = await self.index.get_job_data(candidate_id)
            if data is None:
                continue

            comparison = compare_locations(
                location,
                data.location,
                same_threshold=self.config.location_same_threshold,
                different_threshold=self.config.location_different_threshold,
            )
            if comparison.result == "DIFFERENT":
                self.metrics.location_vetoes += 1
                continue

            distance = hamming_distance(fingerprint.bits, data.fingerprint.bits)
            if distance > self.config.duplicate_threshold:
                continue
            if self.config.match_strategy == "first":
                return _Match(candidate_id=candidate_id, distance=distance)
            if best is None or distance < best.distance:
                best = _Match(candidate_id=candidate_id, distance=distance)
        return best
