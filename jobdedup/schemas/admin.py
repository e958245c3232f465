from datetime import date
from typing import Any

from pydantic import BaseModel, Field, model_validator


class DailyCountersOut(BaseModel):
    day: str
    processed: int = 0
    duplicates: int = 0
    indexed: int = 0
    sources: dict[str, int] = Field(default_factory=dict)


class IndexStatsOut(BaseModel):
    indexed_jobs: int
    cached_locations: int
    band_buckets: int
    today: DailyCountersOut
    session: dict[str, int]
    geocoder: dict[str, Any] | None = None


class BandCleanupOut(BaseModel):
    removed_entries: int
    band_keys_checked: int
    band_keys_deleted: int


class ClearRequest(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    clear_all: bool = False

    @model_validator(mode="after")
    def _check_mode(self) -> "ClearRequest":
        has_range = self.start_date is not None and self.end_date is not None
        if not has_range and not self.clear_all:
            raise ValueError("specify start_date/end_date or clear_all: true")
        if has_range and self.start_date > self.end_date:  # type: ignore[operator]
            raise ValueError("start_date must not be after end_date")
        return self


class ClearOut(BaseModel):
    cleared_all: bool = False
    removed_jobs: int | None = None
    scanned: int | None = None
    deleted_keys: int | None = None


class RemoveJobsRequest(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=10000)


class RemoveJobsOut(BaseModel):
    removed: int
    requested: int
