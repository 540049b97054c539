import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware

from gatekeeper.api.main import api_router
from gatekeeper.core.config import settings
from gatekeeper.core.gateway.auth import SupabaseAuthProvider, get_auth_provider
from gatekeeper.core.gateway.middleware import GatewayMiddleware
from gatekeeper.core.gateway.ratelimit import run_cleanup_loop

_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@contextlib.asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Run the login-limiter sweep for the lifetime of the app."""
    cleanup = asyncio.create_task(run_cleanup_loop())
    try:
        yield
    finally:
        cleanup.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup
        if get_auth_provider.cache_info().currsize:
            provider = get_auth_provider()
            if isinstance(provider, SupabaseAuthProvider):
                await provider.aclose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: standardized error response format
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with a human-readable detail string instead of raw Pydantic errors."""
    errors = exc.errors()
    messages = []
    for err in errors:
        loc = " → ".join(str(l) for l in err.get("loc", []) if l != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(
        status_code=422,
        content={"detail": "; ".join(messages)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions: log and return 500 with safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


# Gateway runs inside CORS so preflight requests are answered before it.
app.add_middleware(GatewayMiddleware)

if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
