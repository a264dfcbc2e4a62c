from contextlib import asynccontextmanager
import logging
import time
from urllib.parse import urlencode

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.requests import Request

from booklab.api.router import api_router
from booklab.core.auth import AccessDeniedError, AuthenticationRequiredError
from booklab.core.config import get_settings
from booklab.core.negotiation import is_browser_request
from booklab.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from booklab.services.repository import get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_repository.cache_clear()


configure_api_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


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


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError) -> Response:
    """Single rescue point for authorization failures raised anywhere below the routers."""
    if isinstance(exc, AuthenticationRequiredError):
        if is_browser_request(request):
            return_to = request.url.path
            if request.url.query:
                return_to = f"{return_to}?{request.url.query}"
            location = f"{get_settings().sign_in_path}?{urlencode({'return_to': return_to})}"
            return RedirectResponse(url=location, status_code=status.HTTP_302_FOUND)
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": exc.message})
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": exc.message})


app.include_router(api_router)
