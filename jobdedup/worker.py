from __future__ import annotations

import asyncio
import logging
import random
import time

from opentelemetry import trace

from jobdedup.core.config import get_settings
from jobdedup.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobdedup.jobs.cleanup import run_band_cleanup
from jobdedup.services.engine import DedupService, get_dedup_service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_worker() -> None:
    settings = get_settings()
    configure_logging()
    telemetry_runtime = setup_telemetry(settings)
    service: DedupService | None = None

    backoff = settings.poll_interval_seconds
    last_cleanup_at: float | None = None

    try:
        service = get_dedup_service()
        await service.initialize()
        while True:
            try:
                with tracer.start_as_current_span("worker.cleanup_cycle"):
                    now = time.monotonic()
                    if last_cleanup_at is None or now - last_cleanup_at >= settings.cleanup_interval_seconds:
                        result = await run_band_cleanup(service)
                        if result["removed_entries"]:
                            logger.info("removed stale band entries: %s", result["removed_entries"])
                        last_cleanup_at = now

                backoff = settings.poll_interval_seconds
                await asyncio.sleep(settings.poll_interval_seconds)
            except Exception as exc:  # pragma: no cover - worker robustness
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("worker iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        if service is not None:
            await service.close()
        get_dedup_service.cache_clear()
        shutdown_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_worker())
