"""
Kreol Back Office - FastAPI Application
Version: 1.2

Main entry point with automatic database initialization.
"""

import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure structured logging FIRST (before any other imports)
from services.logging_config import bind_request_context, configure_logging, get_logger

# Use JSON logging in production, console in development
is_production = os.getenv('APP_ENV', 'development') == 'production'
configure_logging(json_format=is_production, log_level=os.getenv('LOG_LEVEL', 'INFO'))

logger = get_logger(__name__)

# Import config
from config import get_settings

settings = get_settings()

from security import require_staff, verify_api_key
from services.errors import BackOfficeError, NotFoundError, TransientStoreError, ValidationError


async def build_store():
    from services.data_store import MemoryDataStore, SqlDataStore

    if settings.uses_memory_store:
        logger.warning("Using in-memory data store, nothing is persisted")
        return MemoryDataStore()

    from database import AsyncSessionLocal, wait_for_database

    if not await wait_for_database():
        raise RuntimeError("Database not available")

    return SqlDataStore(AsyncSessionLocal)


async def build_outbox(app: FastAPI):
    from services.notifications import EmailSender, InlineOutbox, LogOutbox, RedisOutbox

    if settings.OUTBOX_BACKEND == "log":
        return LogOutbox()

    if settings.OUTBOX_BACKEND == "inline":
        return InlineOutbox(EmailSender(
            settings.PLATFORM_URL,
            settings.PLATFORM_SERVICE_KEY,
            settings.EMAIL_FUNCTION,
            settings.HTTP_TIMEOUT,
        ))

    try:
        redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS
        )
        await redis_client.ping()
        app.state.redis = redis_client
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise RuntimeError(f"Redis not available: {e}")

    return RedisOutbox(redis_client)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")

    from services.blob_storage import BlobStorage
    from services.container import build_services

    # 1. Data store (waits for the database and creates tables)
    store = await build_store()

    # 2. Notification outbox
    outbox = await build_outbox(app)

    # 3. Services
    app.state.services = build_services(
        store,
        outbox,
        blob_storage=BlobStorage(
            settings.PLATFORM_URL,
            settings.STORAGE_BUCKET,
            settings.PLATFORM_SERVICE_KEY,
            settings.HTTP_TIMEOUT,
        ),
        portal_url=settings.PORTAL_URL,
        report_timezone=settings.REPORT_TIMEZONE,
    )
    logger.info(
        "Services initialized",
        data_backend=settings.DATA_BACKEND,
        outbox=settings.OUTBOX_BACKEND
    )

    # 4. Initialize metrics
    from services.metrics import set_app_info
    set_app_info(version=settings.APP_VERSION, environment=settings.APP_ENV)

    logger.info("Application ready!")

    yield

    # Shutdown
    logger.info("Shutting down...")

    await app.state.services.close()

    if getattr(app.state, 'redis', None):
        await app.state.redis.aclose()

    if not settings.uses_memory_store:
        from database import close_db
        await close_db()

    logger.info("Goodbye!")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Bookings, invoicing and VAT reporting for a tour and transfer operator",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Trace ID middleware for distributed tracing
@app.middleware("http")
async def trace_id_middleware(request: Request, call_next):
    """Add trace ID to each request and record request metrics."""
    from services.metrics import record_request

    trace_id = request.headers.get("X-Trace-ID") or str(uuid.uuid4())[:8]
    bind_request_context(trace_id, request.headers.get("X-Actor-Id"))
    started = time.perf_counter()

    response = await call_next(request)

    response.headers["X-Trace-ID"] = trace_id

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    record_request(request.method, endpoint, response.status_code, time.perf_counter() - started)

    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
    )

    return response


# Include routers
from routers import admin, bookings, finance, portal, public, reports

back_office = [Depends(verify_api_key), Depends(require_staff)]

app.include_router(public.router, prefix="/api", tags=["public"])
app.include_router(portal.router, prefix="/api/portal", tags=["portal"])
app.include_router(bookings.router, prefix="/api/admin/bookings", tags=["bookings"], dependencies=back_office)
app.include_router(finance.router, prefix="/api/admin", tags=["finance"], dependencies=back_office)
app.include_router(reports.router, prefix="/api/admin/reports", tags=["reports"], dependencies=back_office)
app.include_router(admin.router, prefix="/api/admin", tags=["admin"], dependencies=back_office)


# =============================================================================
# ERROR MAPPING
# =============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(TransientStoreError)
async def transient_error_handler(request: Request, exc: TransientStoreError):
    logger.warning(f"Store unavailable: {exc.message}", path=request.url.path)
    return JSONResponse(status_code=503, content=exc.to_dict())


@app.exception_handler(BackOfficeError)
async def back_office_error_handler(request: Request, exc: BackOfficeError):
    logger.error(f"Unhandled service error: {exc.message}", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# =============================================================================
# HEALTH
# =============================================================================

@app.get("/health/live")
async def liveness_check():
    """
    Liveness probe - checks if the process is running.

    This should NOT check external dependencies (DB, Redis).
    """
    return {"status": "alive"}


@app.get("/health/ready")
async def readiness_check():
    """
    Readiness probe - checks the data store and Redis.
    """
    checks = {
        "status": "ready",
        "version": settings.APP_VERSION,
        "store": "disconnected",
        "redis": "not_used"
    }

    try:
        services = getattr(app.state, "services", None)
        if services is None:
            raise RuntimeError("services not initialized")

        if not await services.store.ping():
            raise RuntimeError("data store ping failed")
        checks["store"] = "connected"

        if getattr(app.state, 'redis', None):
            await app.state.redis.ping()
            checks["redis"] = "connected"

    except Exception as e:
        checks["status"] = "not_ready"
        checks["error"] = str(e)
        return JSONResponse(status_code=503, content=checks)

    return checks


@app.get("/health")
async def health_check():
    """Health check endpoint (legacy, same as readiness)."""
    return await readiness_check()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    from services.metrics import get_metrics
    return get_metrics()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        workers=1
    )
