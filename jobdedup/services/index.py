from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging

from jobdedup.services.fingerprint import Fingerprint
from jobdedup.services.keys import IndexKeys
from jobdedup.services.location import LocationInfo, location_from_record, location_to_record
from jobdedup.services.store import KeyedStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredFingerprint:
    hash: str
    bits: list[int]
    bands: list[str]
    indexed_at_ms: int | None


@dataclass(slots=True)
class JobData:
    fingerprint: StoredFingerprint
    location: LocationInfo


@dataclass(slots=True)
class ExistingJobs:
    existing: list[str] = field(default_factory=list)
    new: list[str] = field(default_factory=list)


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class FingerprintIndex:
    """Band buckets plus per-posting fingerprint and location records.

    Writes are pipelined but not transactional. A band member whose
    fingerprint record is missing is treated as absent and cleaned up later by
    maintenance.
    """

    def __init__(self, store: KeyedStore, keys: IndexKeys, job_ttl_seconds: int) -> None:
        self.store = store
        self.keys = keys
        self.job_ttl_seconds = job_ttl_seconds

    async def find_candidates(self, bands: Sequence[str]) -> set[str]:
        buckets = await self.store.members_many([self.keys.band_key(band) for band in bands])
        candidates: set[str] = set()
        for bucket in buckets:
            candidates.update(bucket)
        return candidates

    async def index_job(self, job_id: str, fingerprint: Fingerprint, location: LocationInfo) -> None:
        async with self.store.batch() as batch:
            batch.set_hash(
                self.keys.fingerprint_key(job_id),
                {
                    "hash": fingerprint.hash,
                    "bits": json.dumps(fingerprint.bits, separators=(",", ":")),
                    "bands": json.dumps(fingerprint.bands),
                    "indexedAt": str(to_epoch_ms(fingerprint.indexed_at)),
                },
                ttl_seconds=self.job_ttl_seconds,
            )
            batch.set_hash(
                self.keys.location_key(job_id),
                location_to_record(location),
                ttl_seconds=self.job_ttl_seconds,
            )
            for band in fingerprint.bands:
                batch.add_member(self.keys.band_key(band), job_id)

    async def get_job_data(self, job_id: str) -> JobData | None:
        fp_row, loc_row = await self.store.get_hashes(
            [self.keys.fingerprint_key(job_id), self.keys.location_key(job_id)]
        )
        fingerprint = _parse_fingerprint(fp_row)
        if fingerprint is None:
            return None
        return JobData(fingerprint=fingerprint, location=location_from_record(loc_row))

    async def remove_job(self, job_id: str) -> bool:
        data = await self.get_job_data(job_id)
        if data is not None:
            async with self.store.batch() as batch:
                for band in data.fingerprint.bands:
                    batch.remove_member(self.keys.band_key(band), job_id)
        await self.store.delete(self.keys.fingerprint_key(job_id), self.keys.location_key(job_id))
        return data is not None

    async def check_existing_jobs(self, job_ids: Sequence[str]) -> ExistingJobs:
        flags = await self.store.exists_many([self.keys.fingerprint_key(job_id) for job_id in job_ids])
        result = ExistingJobs()
        for job_id, exists in zip(job_ids, flags):
            (result.existing if exists else result.new).append(job_id)
        return result


def _parse_fingerprint(row: dict[str, str]) -> StoredFingerprint | None:
    if not row or not row.get("hash"):
        return None
    try:
        bits = json.loads(row.get("bits") or "[]")
        bands = json.loads(row.get("bands") or "[]")
    except json.JSONDecodeError:
        logger.warning("malformed fingerprint record hash=%s", row.get("hash"))
        return None
    if not isinstance(bits, list) or not isinstance(bands, list) or not bits:
        return None

    indexed_at_ms: int | None
    try:
        indexed_at_ms = int(row["indexedAt"])
    except (KeyError, TypeError, ValueError):
        indexed_at_ms = None

    return StoredFingerprint(
        hash=row["hash"],
        bits=[1 if bit else 0 for bit in bits],
        bands=[str(band) for band in bands],
        indexed_at_ms=indexed_at_ms,
    )
