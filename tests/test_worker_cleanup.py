from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

import jobdedup.worker as worker
from jobdedup.core.config import get_settings
from jobdedup.core.errors import DedupConfigurationError
from jobdedup.core.telemetry import TelemetryRuntime
from jobdedup.jobs.cleanup import run_band_cleanup
from jobdedup.services.engine import DedupService, get_dedup_service


def test_run_band_cleanup_reports_summary(make_service: Callable[..., DedupService]) -> None:
    async def run() -> dict[str, Any]:
        service = make_service()
        verdict = await service.process_job(
            {
                "id": "expired",
                "company": "Contoso",
                "title": "Barista",
                "description": "Pull espresso shots and keep the cafe tidy.",
                "location": "Remote",
            }
        )
        assert verdict.indexed is True
        await service.store.client.delete("dedup:job:fp:expired")
        return await run_band_cleanup(service)

    result = asyncio.run(run())
    assert result == {
        "handled": True,
        "kind": "cleanup_expired_bands",
        "removed_entries": 4,
        "band_keys_checked": 4,
        "band_keys_deleted": 4,
    }


def test_worker_shuts_down_telemetry_when_misconfigured(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = TelemetryRuntime(enabled=False, provider=None)
    shutdowns: list[TelemetryRuntime] = []
    monkeypatch.delenv("JOBDEDUP_REDIS_URL", raising=False)
    monkeypatch.setattr(worker, "setup_telemetry", lambda settings: runtime)
    monkeypatch.setattr(worker, "shutdown_telemetry", shutdowns.append)
    get_settings.cache_clear()
    get_dedup_service.cache_clear()

    try:
        with pytest.raises(DedupConfigurationError):
            asyncio.run(worker.run_worker())
    finally:
        get_settings.cache_clear()

    assert shutdowns == [runtime]
