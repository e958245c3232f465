from fastapi import APIRouter, Depends, HTTPException, status
from redis.exceptions import RedisError

from jobdedup.services.engine import get_dedup_service

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(service=Depends(get_dedup_service)) -> dict[str, str]:
    try:
        await service.store.ping()
    except RedisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="index store unavailable") from exc
    return {"status": "ready"}
