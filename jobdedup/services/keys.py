from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IndexKeys:
    """Key prefixes for everything the index persists under one namespace."""

    namespace: str = "dedup"

    @property
    def geo(self) -> str:
        return f"{self.namespace}:geo:"

    @property
    def band(self) -> str:
        return f"{self.namespace}:band:"

    @property
    def job_fp(self) -> str:
        return f"{self.namespace}:job:fp:"

    @property
    def job_loc(self) -> str:
        return f"{self.namespace}:job:loc:"

    @property
    def metrics(self) -> str:
        return f"{self.namespace}:metrics:"

    @property
    def prefixes(self) -> tuple[str, ...]:
        return (self.geo, self.band, self.job_fp, self.job_loc, self.metrics)

    def geo_key(self, normalized_location: str) -> str:
        return self.geo + normalized_location

    def band_key(self, band: str) -> str:
        return self.band + band

    def fingerprint_key(self, job_id: str) -> str:
        return self.job_fp + job_id

    def location_key(self, job_id: str) -> str:
        return self.job_loc + job_id

    def metrics_key(self, day: str) -> str:
        return self.metrics + day

    def job_id_from_fingerprint_key(self, key: str) -> str:
        return key[len(self.job_fp) :]
