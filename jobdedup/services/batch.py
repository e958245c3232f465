from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any, Literal

from opentelemetry import trace

from jobdedup.core.errors import BatchAbortedError
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.dedupe import DuplicateResolver, Verdict
from jobdedup.services.location import LocationResolver
from jobdedup.services.metrics import DailyMetricsRecorder, SessionMetrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MIN_JOBS_FOR_FAIL_FAST = 10
ERROR_RATE_THRESHOLD = 0.5
PROGRESS_EVERY = 10

BatchPhase = Literal["geocoding", "deduplicating", "complete"]


@dataclass(slots=True)
class BatchStats:
    total: int
    duplicates: int = 0
    indexed: int = 0
    errors: int = 0


@dataclass(slots=True)
class BatchEntry:
    posting_id: str | None
    verdict: Verdict | None = None
    error: str | None = None


@dataclass(slots=True)
class BatchResult:
    results: list[BatchEntry]
    stats: BatchStats


@dataclass(slots=True)
class BatchProgress:
    phase: BatchPhase
    total: int | None = None
    completed: int | None = None
    stats: BatchStats | None = None


@dataclass(slots=True)
class DuplicateLink:
    posting_id: str
    duplicate_of: str


@dataclass(slots=True)
class ScrapeOutcome:
    new_jobs: list[str] = field(default_factory=list)
    duplicate_jobs: list[DuplicateLink] = field(default_factory=list)
    stats: BatchStats | None = None


ProgressCallback = Callable[[BatchProgress], None]
PostingLike = PostingIn | Mapping[str, Any]


class BatchOrchestrator:
    """Sequential batch ingestion with a geocode warm-up and a fail-fast breaker.

    Postings are processed one at a time so index writes within a batch are
    ordered and two postings in the same batch cannot both claim to be the
    original. Concurrent batches are not serialized against each other.
    """

    def __init__(
        self,
        resolver: DuplicateResolver,
        locations: LocationResolver,
        daily_metrics: DailyMetricsRecorder,
        metrics: SessionMetrics,
        *,
        min_jobs_for_fail_fast: int = MIN_JOBS_FOR_FAIL_FAST,
        error_rate_threshold: float = ERROR_RATE_THRESHOLD,
    ) -> None:
        self.resolver = resolver
        self.locations = locations
        self.daily_metrics = daily_metrics
        self.metrics = metrics
        self.min_jobs_for_fail_fast = min_jobs_for_fail_fast
        self.error_rate_threshold = error_rate_threshold

    async def process_job_batch(
        self,
        postings: Sequence[PostingLike],
        *,
        source: str = "unknown",
        skip_index: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        stats = BatchStats(total=len(postings))
        results: list[BatchEntry] = []

        with tracer.start_as_current_span("dedup.process_batch") as span:
            span.set_attribute("batch.source", source)
            span.set_attribute("batch.size", len(postings))

            unique_locations = list(dict.fromkeys(loc for loc in map(_raw_location, postings) if loc))
            _report(on_progress, BatchProgress(phase="geocoding", total=len(unique_locations), completed=0))
            for position, raw_location in enumerate(unique_locations):
                await self.locations.resolve(raw_location)
                if position % PROGRESS_EVERY == 0:
                    _report(
                        on_progress,
                        BatchProgress(phase="geocoding", total=len(unique_locations), completed=position + 1),
                    )

            _report(on_progress, BatchProgress(phase="deduplicating", total=len(postings), completed=0))
            for position, posting in enumerate(postings):
                attempted = position + 1
                try:
                    verdict = await self.resolver.process_job(posting, skip_index=skip_index)
                except Exception as exc:
                    stats.errors += 1
                    self.metrics.errors += 1
                    results.append(BatchEntry(posting_id=_raw_id(posting), error=str(exc) or type(exc).__name__))
                    logger.warning("batch posting failed id=%s source=%s: %s", _raw_id(posting), source, exc)
                else:
                    results.append(BatchEntry(posting_id=verdict.posting_id, verdict=verdict))
                    if verdict.is_duplicate:
                        stats.duplicates += 1
                    elif verdict.indexed:
                        stats.indexed += 1

                if attempted >= self.min_jobs_for_fail_fast:
                    error_rate = stats.errors / attempted
                    if error_rate > self.error_rate_threshold:
                        span.set_attribute("batch.aborted", True)
                        logger.error(
                            "aborting batch source=%s error_rate=%.3f attempted=%s errors=%s",
                            source,
                            error_rate,
                            attempted,
                            stats.errors,
                        )
                        raise BatchAbortedError(
                            error_rate=error_rate,
                            attempted=attempted,
                            errors=stats.errors,
                            threshold=self.error_rate_threshold,
                            results=results,
                            stats=stats,
                        )

                if position % PROGRESS_EVERY == 0:
                    _report(
                        on_progress,
                        BatchProgress(phase="deduplicating", total=len(postings), completed=attempted, stats=stats),
                    )

            _report(on_progress, BatchProgress(phase="complete", stats=stats))
            await self.daily_metrics.record_batch(
                source=source,
                processed=stats.total,
                duplicates=stats.duplicates,
                indexed=stats.indexed,
            )
            logger.info(
                "batch complete source=%s total=%s duplicates=%s indexed=%s errors=%s",
                source,
                stats.total,
                stats.duplicates,
                stats.indexed,
                stats.errors,
            )
        return BatchResult(results=results, stats=stats)

    async def process_scrape_results(
        self,
        postings: Sequence[PostingLike],
        *,
        source: str = "unknown",
        on_progress: ProgressCallback | None = None,
    ) -> ScrapeOutcome:
        batch = await self.process_job_batch(postings, source=source, on_progress=on_progress)
        outcome = ScrapeOutcome(stats=batch.stats)
        for entry in batch.results:
            if entry.verdict is None or entry.posting_id is None:
                continue
            if entry.verdict.is_duplicate and entry.verdict.duplicate_of is not None:
                outcome.duplicate_jobs.append(
                    DuplicateLink(posting_id=entry.posting_id, duplicate_of=entry.verdict.duplicate_of)
                )
            else:
                outcome.new_jobs.append(entry.posting_id)
        return outcome


def _report(callback: ProgressCallback | None, progress: BatchProgress) -> None:
    if callback is not None:
        callback(progress)


def _raw_location(posting: PostingLike) -> str:
    if isinstance(posting, PostingIn):
        return posting.location
    if isinstance(posting, Mapping):
        value = posting.get("location")
        return value if isinstance(value, str) else ""
    return ""


def _raw_id(posting: PostingLike) -> str | None:
    if isinstance(posting, PostingIn):
        return posting.id
    if isinstance(posting, Mapping):
        value = posting.get("id")
        if value is None:
            return None
        return str(value)
    return None
