from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis.exceptions import RedisError

from jobdedup.core.errors import BatchAbortedError, InvalidPostingError
from jobdedup.schemas.dedup import (
    BatchEntryOut,
    BatchOut,
    BatchRequest,
    BatchStatsOut,
    ExistingJobsOut,
    ExistingJobsRequest,
    LocationOut,
    VerdictOut,
)
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.batch import BatchStats
from jobdedup.services.dedupe import Verdict
from jobdedup.services.engine import get_dedup_service

router = APIRouter()


@router.post("/jobs", response_model=VerdictOut)
async def process_job(
    payload: PostingIn,
    skip_index: bool = Query(default=False),
    service=Depends(get_dedup_service),
) -> VerdictOut:
    try:
        verdict = await service.process_job(payload, skip_index=skip_index)
    except InvalidPostingError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc
    return verdict_out(verdict)


@router.post("/batches", response_model=BatchOut)
async def process_batch(payload: BatchRequest, service=Depends(get_dedup_service)) -> BatchOut:
    try:
        result = await service.process_job_batch(
            payload.postings,
            source=payload.source,
            skip_index=payload.skip_index,
        )
    except BatchAbortedError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc

    return BatchOut(
        results=[
            BatchEntryOut(
                posting_id=entry.posting_id,
                verdict=verdict_out(entry.verdict) if entry.verdict is not None else None,
                error=entry.error,
            )
            for entry in result.results
        ],
        stats=_stats_out(result.stats),
    )


@router.post("/existing", response_model=ExistingJobsOut)
async def check_existing_jobs(payload: ExistingJobsRequest, service=Depends(get_dedup_service)) -> ExistingJobsOut:
    try:
        existing = await service.check_existing_jobs(payload.ids)
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc
    return ExistingJobsOut(existing=existing.existing, new=existing.new)


def verdict_out(verdict: Verdict) -> VerdictOut:
    location = None
    if verdict.location is not None:
        location = LocationOut(lat=verdict.location.lat, lng=verdict.location.lng, type=verdict.location.type)
    return VerdictOut(
        posting_id=verdict.posting_id,
        is_duplicate=verdict.is_duplicate,
        fingerprint=verdict.fingerprint,
        duplicate_of=verdict.duplicate_of,
        hamming_distance=verdict.hamming_distance,
        indexed=verdict.indexed,
        location=location,
    )


def _stats_out(stats: BatchStats) -> BatchStatsOut:
    return BatchStatsOut(
        total=stats.total,
        duplicates=stats.duplicates,
        indexed=stats.indexed,
        errors=stats.errors,
    )
