from datetime import datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from redis.exceptions import RedisError

from jobdedup.core.security import require_admin_key
from jobdedup.schemas.admin import (
    BandCleanupOut,
    ClearOut,
    ClearRequest,
    DailyCountersOut,
    IndexStatsOut,
    RemoveJobsOut,
    RemoveJobsRequest,
)
from jobdedup.services.engine import get_dedup_service

router = APIRouter(dependencies=[Depends(require_admin_key)])


@router.get("/stats", response_model=IndexStatsOut)
async def get_stats(service=Depends(get_dedup_service)) -> IndexStatsOut:
    try:
        stats = await service.get_stats()
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc

    return IndexStatsOut(
        indexed_jobs=stats.indexed_jobs,
        cached_locations=stats.cached_locations,
        band_buckets=stats.band_buckets,
        today=DailyCountersOut(
            day=stats.today.day,
            processed=stats.today.processed,
            duplicates=stats.today.duplicates,
            indexed=stats.today.indexed,
            sources=stats.today.sources,
        ),
        session=stats.session,
        geocoder=stats.geocoder,
    )


@router.post("/cleanup-bands", response_model=BandCleanupOut)
async def cleanup_expired_bands(service=Depends(get_dedup_service)) -> BandCleanupOut:
    try:
        summary = await service.cleanup_expired_bands()
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc
    return BandCleanupOut(
        removed_entries=summary.removed_entries,
        band_keys_checked=summary.band_keys_checked,
        band_keys_deleted=summary.band_keys_deleted,
    )


@router.post("/clear", response_model=ClearOut)
async def clear_index(payload: ClearRequest, service=Depends(get_dedup_service)) -> ClearOut:
    try:
        if payload.start_date is not None and payload.end_date is not None:
            start = datetime.combine(payload.start_date, time.min, tzinfo=timezone.utc)
            end = datetime.combine(payload.end_date, time.max, tzinfo=timezone.utc)
            summary = await service.clear_by_date_range(
                int(start.timestamp() * 1000),
                int(end.timestamp() * 1000),
            )
            return ClearOut(removed_jobs=summary.removed_jobs, scanned=summary.scanned)

        deleted = await service.clear_all()
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc
    return ClearOut(cleared_all=True, deleted_keys=deleted)


@router.post("/jobs/remove", response_model=RemoveJobsOut)
async def remove_jobs(payload: RemoveJobsRequest, service=Depends(get_dedup_service)) -> RemoveJobsOut:
    removed = 0
    try:
        for job_id in payload.ids:
            if await service.remove_job(job_id):
                removed += 1
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc
    return RemoveJobsOut(removed=removed, requested=len(payload.ids))
