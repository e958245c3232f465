from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from starlette.requests import Request

from jobdedup.api.router import api_router
from jobdedup.core.config import get_settings
from jobdedup.core.errors import DedupConfigurationError
from jobdedup.core.telemetry import TelemetryRuntime, configure_logging, setup_telemetry, shutdown_telemetry
from jobdedup.services.engine import get_dedup_service

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_telemetry(_telemetry_runtime)
        if get_dedup_service.cache_info().currsize:
            await get_dedup_service().close()
        get_dedup_service.cache_clear()


configure_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_telemetry(settings, app)


@app.exception_handler(DedupConfigurationError)
async def configuration_error_handler(_: Request, exc: DedupConfigurationError) -> JSONResponse:
    logger.error("dedup service misconfigured: %s", exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
