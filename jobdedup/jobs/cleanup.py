from __future__ import annotations

from typing import Any

from jobdedup.services.engine import DedupService


async def run_band_cleanup(service: DedupService) -> dict[str, Any]:
    summary = await service.cleanup_expired_bands()
    return {
        "handled": True,
        "kind": "cleanup_expired_bands",
        "removed_entries": summary.removed_entries,
        "band_keys_checked": summary.band_keys_checked,
        "band_keys_deleted": summary.band_keys_deleted,
    }
