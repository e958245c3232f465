from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from jobdedup.core.errors import DedupConfigurationError

MatchStrategy = Literal["first", "closest"]

FINGERPRINT_BITS = 64
DAY_SECONDS = 60 * 60 * 24


class Settings(BaseSettings):
    app_name: str = "jobdedup"
    environment: str = "dev"
    redis_url: str | None = None
    key_namespace: str = "dedup"
    weight_company: int = 2
    weight_title: int = 1
    weight_description: int = 4
    duplicate_threshold: int = 10
    num_bands: int = 4
    location_same_threshold_miles: float = 15.0
    location_different_threshold_miles: float = 40.0
    job_ttl_seconds: int = 30 * DAY_SECONDS
    geo_ttl_seconds: int = 90 * DAY_SECONDS
    metrics_ttl_seconds: int = 30 * DAY_SECONDS
    match_strategy: MatchStrategy = "first"
    mapbox_api_key: str | None = None
    mapbox_base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    geocoder_requests_per_second: float = 10.0
    geocoder_daily_limit: int = 1000
    geocoder_timeout_seconds: float = 5.0
    admin_api_key: str | None = None
    cleanup_interval_seconds: float = float(DAY_SECONDS)
    poll_interval_seconds: float = 60.0
    max_backoff_seconds: float = 900.0
    otel_enabled: bool = True
    otel_service_name: str = "jobdedup"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JOBDEDUP_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True, slots=True)
class FieldWeights:
    company: int = 2
    title: int = 1
    description: int = 4


@dataclass(frozen=True, slots=True)
class DedupConfig:
    """Tuning knobs for one dedup instance.

    ``num_bands`` and ``duplicate_threshold`` are coupled: fewer, wider bands
    raise recall and candidate-set size, more, narrower bands raise precision
    and may miss near-duplicates whose differing bits land in every band.
    """

    weights: FieldWeights = field(default_factory=FieldWeights)
    duplicate_threshold: int = 10
    num_bands: int = 4
    location_same_threshold: float = 15.0
    location_different_threshold: float = 40.0
    job_ttl: int = 30 * DAY_SECONDS
    geo_ttl: int = 90 * DAY_SECONDS
    metrics_ttl: int = 30 * DAY_SECONDS
    key_namespace: str = "dedup"
    match_strategy: MatchStrategy = "first"

    def __post_init__(self) -> None:
        if self.num_bands <= 0 or FINGERPRINT_BITS % self.num_bands != 0:
            raise DedupConfigurationError(f"num_bands must evenly divide {FINGERPRINT_BITS}, got {self.num_bands}")
        if not 0 <= self.duplicate_threshold <= FINGERPRINT_BITS:
            raise DedupConfigurationError(
                f"duplicate_threshold must be within 0..{FINGERPRINT_BITS}, got {self.duplicate_threshold}"
            )
        if min(self.weights.company, self.weights.title, self.weights.description) < 0:
            raise DedupConfigurationError("shingle weights must be non-negative")
        if self.location_same_threshold < 0 or self.location_different_threshold < 0:
            raise DedupConfigurationError("location thresholds must be non-negative")
        if self.location_same_threshold > self.location_different_threshold:
            raise DedupConfigurationError("location_same_threshold must not exceed location_different_threshold")
        if min(self.job_ttl, self.geo_ttl, self.metrics_ttl) <= 0:
            raise DedupConfigurationError("TTLs must be positive")
        if not self.key_namespace:
            raise DedupConfigurationError("key_namespace must not be empty")
        if self.match_strategy not in {"first", "closest"}:
            raise DedupConfigurationError(f"unknown match_strategy: {self.match_strategy}")

    @property
    def band_width(self) -> int:
        return FINGERPRINT_BITS // self.num_bands

    @classmethod
    def from_settings(cls, settings: Settings) -> DedupConfig:
        return cls(
            weights=FieldWeights(
                company=settings.weight_company,
                title=settings.weight_title,
                description=settings.weight_description,
            ),
            duplicate_threshold=settings.duplicate_threshold,
            num_bands=settings.num_bands,
            location_same_threshold=settings.location_same_threshold_miles,
            location_different_threshold=settings.location_different_threshold_miles,
            job_ttl=settings.job_ttl_seconds,
            geo_ttl=settings.geo_ttl_seconds,
            metrics_ttl=settings.metrics_ttl_seconds,
            key_namespace=settings.key_namespace,
            match_strategy=settings.match_strategy,
        )
