# server/ephemeris_server/main.py
import logging
import time
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import load_config, print_config
from .ephemeris.spice_provider import SpicePositionProvider
from .errors import EphemerisError
from .schemas import HealthzResponse
from .service import EphemerisService
from .obs.logging import setup_logging, StructuredLogger, set_request_context, clear_request_context
from .obs.metrics import metrics, get_metrics_content, RequestMetricsMiddleware
from .util.dates import format_instant, utc_now
from . import api
from . import mcp_server

# Will be configured in lifespan
logger = logging.getLogger(__name__)
business_logger = StructuredLogger(__name__)

# Global configuration and services
CONFIG = None
PROVIDER = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown.

    When a service has already been injected into the api module (tests,
    embedding), configuration and kernel loading are skipped.
    """
    global CONFIG, PROVIDER

    startup_start = time.perf_counter()

    if api.SERVICE is None:
        CONFIG = load_config()
        setup_logging(level=CONFIG.logging.level, enable_json=CONFIG.logging.json_format)

        logger.info(f"Starting ephemeris server v{__version__}...")
        business_logger.startup_event("application", "starting")
        print_config(CONFIG)

        try:
            provider_start = time.perf_counter()
            business_logger.startup_event("spice_provider", "starting")
            PROVIDER = SpicePositionProvider.from_config(CONFIG)
            PROVIDER.load()
            business_logger.startup_event(
                "spice_provider", "ready",
                duration_ms=(time.perf_counter() - provider_start) * 1000,
                details={"bundle": CONFIG.kernels.bundle}
            )
        except EphemerisError as e:
            business_logger.startup_event("spice_provider", "error", details={"error": e.message})
            logger.error(f"Failed to initialize position provider: {e.message}")
            raise

        api.CONFIG = CONFIG
        api.SERVICE = EphemerisService.from_config(CONFIG, PROVIDER)

        metrics.set_system_info(
            version=__version__,
            kernel_bundle=CONFIG.kernels.bundle,
            python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            spice_version=PROVIDER.describe().get("spice_version", "unknown")
        )

    mcp_server.configure(api.SERVICE)

    async with mcp_server.mcp.session_manager.run():
        business_logger.startup_event(
            "application", "ready",
            duration_ms=(time.perf_counter() - startup_start) * 1000
        )
        logger.info("Ephemeris server startup complete")

        yield

    logger.info("Shutting down ephemeris server...")
    business_logger.startup_event("application", "stopping")

    if PROVIDER is not None:
        PROVIDER.unload()
        business_logger.startup_event("spice_provider", "stopped")

    business_logger.startup_event("application", "stopped")
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Ephemeris Server",
    version=__version__,
    description="Celestial body positions, aspects, moon phase, daily events and zodiac signs",
    lifespan=lifespan
)

# Add metrics middleware
app.add_middleware(RequestMetricsMiddleware)

# CORS origins come from config (CORS_ORIGINS) when set
_cors_origins = load_config().api.cors_origins or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Request correlation and access logging.
    """
    surface = "mcp" if request.url.path.startswith("/mcp") else "rest"
    request_id = set_request_context(request.headers.get("x-request-id"), surface)

    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    finally:
        duration_ms = int((time.perf_counter() - start_time) * 1000)

    logger.info(
        "HTTP request processed",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "user_agent": request.headers.get("user-agent", "unknown")
        }
    )

    response.headers["X-Request-ID"] = request_id
    clear_request_context()
    return response


@app.get("/healthz", response_model=HealthzResponse)
def healthz():
    """
    Health check endpoint with provider status.
    """
    service = api.SERVICE
    if service is None:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": format_instant(utc_now()),
                "error": "Service not initialized"
            }
        )

    try:
        provider_info = service.describe_provider()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": format_instant(utc_now()),
                "error": str(e)
            }
        )

    return {
        "status": "healthy" if provider_info.get("loaded", True) else "degraded",
        "timestamp": format_instant(utc_now()),
        "version": __version__,
        "provider": provider_info,
        "bodies": list(service.supported_bodies),
        "metrics": metrics.get_metrics_summary()
    }


@app.get("/metrics", response_class=PlainTextResponse)
def metrics_endpoint():
    """
    Prometheus metrics endpoint.
    """
    content, content_type = get_metrics_content()
    return PlainTextResponse(content, media_type=content_type)


# Include API routes
app.include_router(api.router)

# MCP tools over streamable HTTP at /mcp
mcp_server.mcp.settings.streamable_http_path = "/"
app.mount("/mcp", mcp_server.mcp.streamable_http_app())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Render structured error details at the top level of the response body.
    """
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {
            "code": "HTTP.ERROR",
            "title": "Request failed",
            "detail": str(exc.detail),
            "tip": ""
        }
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """
    Missing or malformed query parameters.
    """
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in errors
    )
    metrics.record_error("INPUT.INVALID")
    return JSONResponse(
        status_code=400,
        content={
            "code": "INPUT.INVALID",
            "title": "Invalid input",
            "detail": detail,
            "tip": "Check request parameters and ranges in API documentation."
        }
    )


# Global exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.
    """
    logger.error(f"Unhandled exception in {request.method} {request.url}: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "code": "SERVER.ERROR",
            "title": "Internal server error",
            "detail": str(exc),
            "tip": "Please try again or contact support if the problem persists"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
