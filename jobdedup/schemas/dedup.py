from typing import Literal

from pydantic import BaseModel, Field

LocationType = Literal["remote", "physical", "unknown"]


class LocationOut(BaseModel):
    lat: float | None = None
    lng: float | None = None
    type: LocationType


class VerdictOut(BaseModel):
    posting_id: str
    is_duplicate: bool
    fingerprint: str
    duplicate_of: str | None = None
    hamming_distance: int | None = None
    indexed: bool | None = None
    location: LocationOut | None = None


class BatchRequest(BaseModel):
    source: str = Field(default="unknown", min_length=1, max_length=100)
    skip_index: bool = False
    # Raw dicts so one malformed posting is reported in results instead of failing the request.
    postings: list[dict] = Field(default_factory=list, max_length=5000)


class BatchEntryOut(BaseModel):
    posting_id: str | None = None
    verdict: VerdictOut | None = None
    error: str | None = None


class BatchStatsOut(BaseModel):
    total: int
    duplicates: int
    indexed: int
    errors: int


class BatchOut(BaseModel):
    results: list[BatchEntryOut]
    stats: BatchStatsOut


class ExistingJobsRequest(BaseModel):
    ids: list[str] = Field(default_factory=list, max_length=10000)


class ExistingJobsOut(BaseModel):
    existing: list[str]
    new: list[str]
