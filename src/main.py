"""
Child Face Pipeline - Main Application

FastAPI application with:
- API versioning (/api/v1/)
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
- Storage abstraction (local + Cloudinary)
"""

import time
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.logging import setup_logging, get_logger
from src.core.exceptions import register_exception_handlers
from src.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from src.api.v1 import api_v1_router
from src.api.dependencies import get_pipeline_config


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON,
    app_version=settings.APP_VERSION
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - startup and shutdown."""
    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        storage_backend=settings.STORAGE_BACKEND
    )

    if not settings.REPLICATE_API_TOKEN:
        logger.warning("provider_token_missing", message="REPLICATE_API_TOKEN is not set")

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    pipeline_config = get_pipeline_config()
    for stage in pipeline_config.stages:
        logger.info(
            "stage_configured",
            stage=stage.name,
            endpoint=stage.provider_endpoint,
            poll_interval=stage.poll_interval,
            max_poll_attempts=stage.max_poll_attempts
        )

    logger.info("application_ready")

    yield

    logger.info("application_shutdown_complete")


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Generates a child face from two parent photos by chaining three hosted
    inference jobs.

    ## Pipeline Stages

    1. **Synthesis** - custom model blending father + mother photos
    2. **Restoration** - CodeFormer face restoration and upscaling
    3. **Stylization** - FLUX Kontext child-look edit

    Each stage is submitted to the provider and polled until it finishes
    or its attempt budget runs out.
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

# CORS
cors_origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)

    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)

# Legacy route compatibility (unversioned paths used by the original frontend)
from src.api.v1.pipeline import router as legacy_pipeline_router
app.include_router(
    legacy_pipeline_router,
    prefix="/api",
    tags=["pipeline-legacy"],
    deprecated=True
)


# =============================================================================
# Static Files
# =============================================================================

# Local uploads have to be fetchable by the provider
if settings.STORAGE_BACKEND.lower() == "local":
    storage_dir = Path(settings.LOCAL_STORAGE_PATH)
    storage_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/static/storage", StaticFiles(directory=str(storage_dir)), name="storage")


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "api_v1": "/api/v1",
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/ready", tags=["health"])
async def ready():
    """Readiness check - verifies the service can reach its collaborators."""
    checks = {
        "provider_token": bool(settings.REPLICATE_API_TOKEN),
        "storage": False,
    }

    try:
        from src.core.storage import get_storage
        get_storage()
        checks["storage"] = True
    except ValueError as e:
        logger.warning("storage_not_ready", error=str(e))

    all_ready = all(checks.values())

    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "ready": all_ready,
            "checks": checks
        }
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
