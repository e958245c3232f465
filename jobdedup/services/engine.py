from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from functools import lru_cache
import logging
from typing import Any

from jobdedup.core.config import DedupConfig, get_settings
from jobdedup.core.errors import DedupConfigurationError
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.batch import BatchOrchestrator, BatchResult, ProgressCallback, ScrapeOutcome
from jobdedup.services.dedupe import DuplicateResolver, Verdict
from jobdedup.services.fingerprint import FingerprintGenerator
from jobdedup.services.geocoder import Geocoder, MapboxGeocoder
from jobdedup.services.index import ExistingJobs, FingerprintIndex, JobData
from jobdedup.services.keys import IndexKeys
from jobdedup.services.location import LocationInfo, LocationResolver
from jobdedup.services.maintenance import BandCleanupSummary, DateRangeClearSummary, IndexMaintenance, IndexStats
from jobdedup.services.metrics import DailyMetricsRecorder, SessionMetrics
from jobdedup.services.store import KeyedStore, RedisKeyedStore

logger = logging.getLogger(__name__)


class DedupService:
    """One independently configured near-duplicate index.

    Configuration and session counters live on the instance, so several
    services with different namespaces or thresholds can share one process.
    """

    def __init__(
        self,
        store: KeyedStore | None,
        *,
        config: DedupConfig | None = None,
        geocoder: Geocoder | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if store is None:
            raise DedupConfigurationError("a keyed store client is required")

        self.store = store
        self.config = config or DedupConfig()
        self.geocoder = geocoder
        self.keys = IndexKeys(self.config.key_namespace)
        self.metrics = SessionMetrics()
        clock = clock or (lambda: datetime.now(timezone.utc))

        self.generator = FingerprintGenerator(self.config.weights, self.config.num_bands)
        self.index = FingerprintIndex(store, self.keys, self.config.job_ttl)
        self.locations = LocationResolver(
            store,
            self.keys,
            self.metrics,
            geocoder=geocoder,
            geo_ttl_seconds=self.config.geo_ttl,
            clock=clock,
        )
        self.daily_metrics = DailyMetricsRecorder(store, self.keys, self.config.metrics_ttl, clock=clock)
        self.resolver = DuplicateResolver(
            self.config,
            self.index,
            self.locations,
            self.generator,
            self.metrics,
            clock=clock,
        )
        self.batches = BatchOrchestrator(self.resolver, self.locations, self.daily_metrics, self.metrics)
        self.maintenance = IndexMaintenance(store, self.keys, self.index, self.daily_metrics, self.metrics)

    async def initialize(self) -> None:
        await self.store.ping()
        logger.info("dedup service initialized namespace=%s", self.keys.namespace)

    async def close(self) -> None:
        if isinstance(self.geocoder, MapboxGeocoder):
            await self.geocoder.aclose()
        await self.store.close()

    async def process_job(self, posting: PostingIn | Mapping[str, Any], *, skip_index: bool = False) -> Verdict:
        return await self.resolver.process_job(posting, skip_index=skip_index)

    async def process_job_batch(
        self,
        postings: Sequence[PostingIn | Mapping[str, Any]],
        *,
        source: str = "unknown",
        skip_index: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        return await self.batches.process_job_batch(
            postings,
            source=source,
            skip_index=skip_index,
            on_progress=on_progress,
        )

    async def process_scrape_results(
        self,
        postings: Sequence[PostingIn | Mapping[str, Any]],
        *,
        source: str = "unknown",
        on_progress: ProgressCallback | None = None,
    ) -> ScrapeOutcome:
        return await self.batches.process_scrape_results(postings, source=source, on_progress=on_progress)

    async def resolve_location(self, raw_location: str | None) -> LocationInfo:
        return await self.locations.resolve(raw_location)

    async def check_existing_jobs(self, job_ids: Sequence[str]) -> ExistingJobs:
        return await self.index.check_existing_jobs(job_ids)

    async def get_job_data(self, job_id: str) -> JobData | None:
        return await self.index.get_job_data(job_id)

    async def remove_job(self, job_id: str) -> bool:
        return await self.index.remove_job(job_id)

    async def get_stats(self) -> IndexStats:
        usage = self.geocoder.usage() if isinstance(self.geocoder, MapboxGeocoder) else None
        return await self.maintenance.get_stats(geocoder_usage=usage)

    async def cleanup_expired_bands(self) -> BandCleanupSummary:
        return await self.maintenance.cleanup_expired_bands()

    async def clear_by_date_range(self, start_ms: int, end_ms: int) -> DateRangeClearSummary:
        return await self.maintenance.clear_by_date_range(start_ms, end_ms)

    async def clear_all(self) -> int:
        return await self.maintenance.clear_all()


@lru_cache
def get_dedup_service() -> DedupService:
    settings = get_settings()
    if not settings.redis_url:
        raise DedupConfigurationError("JOBDEDUP_REDIS_URL is required")

    geocoder: Geocoder | None = None
    if settings.mapbox_api_key:
        geocoder = MapboxGeocoder(
            settings.mapbox_api_key,
            base_url=settings.mapbox_base_url,
            requests_per_second=settings.geocoder_requests_per_second,
            daily_limit=settings.geocoder_daily_limit,
            timeout_seconds=settings.geocoder_timeout_seconds,
        )
    else:
        logger.warning("JOBDEDUP_MAPBOX_API_KEY not set; physical locations will not be geocoded")

    return DedupService(
        RedisKeyedStore.from_url(settings.redis_url),
        config=DedupConfig.from_settings(settings),
        geocoder=geocoder,
    )
