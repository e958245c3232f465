from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone

from jobdedup.services.keys import IndexKeys
from jobdedup.services.store import KeyedStore

SOURCE_FIELD_PREFIX = "source:"


@dataclass(slots=True)
class SessionMetrics:
    """Process-lifetime counters for one dedup instance. Not persisted."""

    processed: int = 0
    duplicates: int = 0
    indexed: int = 0
    location_vetoes: int = 0
    geo_cache_hits: int = 0
    geo_cache_misses: int = 0
    errors: int = 0

    def reset(self) -> None:
        for item in fields(self):
            setattr(self, item.name, 0)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class DailyCounters:
    day: str
    processed: int = 0
    duplicates: int = 0
    indexed: int = 0
    sources: dict[str, int] = field(default_factory=dict)


class DailyMetricsRecorder:
    """Per-UTC-day counters in the store, incremented once per completed batch."""

    def __init__(
        self,
        store: KeyedStore,
        keys: IndexKeys,
        ttl_seconds: int,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.keys = keys
        self.ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    async def record_batch(self, *, source: str, processed: int, duplicates: int, indexed: int) -> None:
        key = self.keys.metrics_key(self.today().isoformat())
        async with self.store.batch() as batch:
            batch.increment(key, "processed", processed)
            batch.increment(key, "duplicates", duplicates)
            batch.increment(key, "indexed", indexed)
            batch.increment(key, f"{SOURCE_FIELD_PREFIX}{source}", processed)
            batch.expire(key, self.ttl_seconds)

    async def read(self, day: date | None = None) -> DailyCounters:
        day_key = (day or self.today()).isoformat()
        row = await self.store.get_hash(self.keys.metrics_key(day_key))
        return DailyCounters(
            day=day_key,
            processed=_as_int(row.get("processed")),
            duplicates=_as_int(row.get("duplicates")),
            indexed=_as_int(row.get("indexed")),
            sources={
                name[len(SOURCE_FIELD_PREFIX) :]: _as_int(value)
                for name, value in row.items()
                if name.startswith(SOURCE_FIELD_PREFIX)
            },
        )


def _as_int(value: str | None) -> int:
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0
