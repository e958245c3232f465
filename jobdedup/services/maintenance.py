from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from opentelemetry import trace

from jobdedup.services.index import FingerprintIndex
from jobdedup.services.keys import IndexKeys
from jobdedup.services.metrics import DailyCounters, DailyMetricsRecorder, SessionMetrics
from jobdedup.services.store import KeyedStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class BandCleanupSummary:
    removed_entries: int
    band_keys_checked: int
    band_keys_deleted: int


@dataclass(slots=True)
class DateRangeClearSummary:
    removed_jobs: int
    scanned: int


@dataclass(slots=True)
class IndexStats:
    indexed_jobs: int
    cached_locations: int
    band_buckets: int
    today: DailyCounters
    session: dict[str, int]
    geocoder: dict[str, Any] | None = None


class IndexMaintenance:
    """Out-of-band reconciliation and admin operations over the index namespace.

    Band membership is only removed synchronously by ``remove_job``. When a
    fingerprint record expires by TTL its ids linger in band buckets until
    ``cleanup_expired_bands`` runs.
    """

    def __init__(
        self,
        store: KeyedStore,
        keys: IndexKeys,
        index: FingerprintIndex,
        daily_metrics: DailyMetricsRecorder,
        metrics: SessionMetrics,
    ) -> None:
        self.store = store
        self.keys = keys
        self.index = index
        self.daily_metrics = daily_metrics
        self.metrics = metrics

    async def cleanup_expired_bands(self) -> BandCleanupSummary:
        with tracer.start_as_current_span("dedup.cleanup_bands") as span:
            band_keys = await self.store.scan_keys(f"{self.keys.band}*")
            removed = 0
            deleted = 0
            for band_key in band_keys:
                members = sorted(await self.store.members(band_key))
                alive = await self.store.exists_many([self.keys.fingerprint_key(job_id) for job_id in members])
                stale = [job_id for job_id, exists in zip(members, alive) if not exists]
                if stale:
                    removed += await self.store.remove_members(band_key, *stale)
                # Redis drops a set when its last member goes, so the delete may find nothing.
                if await self.store.cardinality(band_key) == 0:
                    await self.store.delete(band_key)
                    deleted += 1

            span.set_attribute("dedup.removed_entries", removed)
            logger.info(
                "band cleanup removed_entries=%s band_keys_checked=%s band_keys_deleted=%s",
                removed,
                len(band_keys),
                deleted,
            )
            return BandCleanupSummary(
                removed_entries=removed,
                band_keys_checked=len(band_keys),
                band_keys_deleted=deleted,
            )

    async def clear_by_date_range(self, start_ms: int, end_ms: int) -> DateRangeClearSummary:
        fingerprint_keys = await self.store.scan_keys(f"{self.keys.job_fp}*")
        removed = 0
        for fingerprint_key in fingerprint_keys:
            raw_indexed_at = await self.store.get_hash_field(fingerprint_key, "indexedAt")
            if not raw_indexed_at:
                continue
            try:
                indexed_at = int(raw_indexed_at)
            except ValueError:
                continue
            if start_ms <= indexed_at <= end_ms:
                await self.index.remove_job(self.keys.job_id_from_fingerprint_key(fingerprint_key))
                removed += 1

        logger.info(
            "cleared postings by date range start_ms=%s end_ms=%s removed=%s scanned=%s",
            start_ms,
            end_ms,
            removed,
            len(fingerprint_keys),
        )
        return DateRangeClearSummary(removed_jobs=removed, scanned=len(fingerprint_keys))

    async def clear_all(self) -> int:
        deleted = 0
        for prefix in self.keys.prefixes:
            keys = await self.store.scan_keys(f"{prefix}*")
            if keys:
                deleted += await self.store.delete(*keys)
        self.metrics.reset()
        logger.warning("cleared all dedup state namespace=%s deleted_keys=%s", self.keys.namespace, deleted)
        return deleted

    async def get_stats(self, *, geocoder_usage: dict[str, Any] | None = None) -> IndexStats:
        fingerprint_keys = await self.store.scan_keys(f"{self.keys.job_fp}*")
        geo_keys = await self.store.scan_keys(f"{self.keys.geo}*")
        band_keys = await self.store.scan_keys(f"{self.keys.band}*")
        return IndexStats(
            indexed_jobs=len(fingerprint_keys),
            cached_locations=len(geo_keys),
            band_buckets=len(band_keys),
            today=await self.daily_metrics.read(),
            session=self.metrics.as_dict(),
            geocoder=geocoder_usage,
        )
