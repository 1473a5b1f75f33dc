"""
FastAPI application main module.
Wires the offer scheduler into the app lifecycle: job records are reconciled
before the worker starts and before the first request is served.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.encoders import jsonable_encoder
from sqlalchemy import text
import time
import uuid
import os
from contextlib import asynccontextmanager
from storefront.api.v1 import api_router
from storefront.utils import setup_logging, get_logger
from storefront.jobs.scheduler import OfferScheduler
from storefront.jobs.worker_scheduler import SchedulerWorker, create_job_store
from storefront.database import engine, Base, SessionLocal
from storefront.config import JOB_STORE_SETTINGS

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/storefront.log"),
    enable_console=True
)

logger = get_logger(__name__)

_worker: SchedulerWorker | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Application startup initiated")

    global _worker
    try:
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)

        store = create_job_store()
        scheduler = OfferScheduler(store)
        # Timers are in-memory only; rebuild them before anything can fire or be requested
        summary = scheduler.reconcile_on_startup()
        app.state.offer_scheduler = scheduler  # type: ignore[attr-defined]

        _worker = SchedulerWorker(scheduler)
        _worker.start()
        logger.info("Offer scheduler started", **summary.as_dict())
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown initiated")
        if _worker:
            _worker.stop(join_timeout=5.0)
        logger.info("Application shutdown completed")

app = FastAPI(
    title="Storefront Offer Scheduler",
    description="""
    Promotional offers with time-triggered product discounts.

    ## Features
    * **Offer lifecycle** - create, update and delete offers with a start/end window
    * **Scheduled discounts** - product discounts switch on at start and off at end
    * **Restart safe** - persisted job records are reconciled on startup
    * **Inspection** - armed timers, job records and recent fires under `/api/v1/jobs`
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# Request ID and logging middleware
@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=str(exc.errors()),
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
            "request_id": request_id
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        }
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )

@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    """Basic health check endpoint for load balancers."""
    scheduler = getattr(app.state, "offer_scheduler", None)
    store_backend = "redis" if getattr(getattr(scheduler, "store", None), "redis_active", False) else "sql"
    return {
        "status": "healthy",
        "service": "storefront-offer-scheduler",
        "version": "1.0.0",
        "timestamp": time.time(),
        "job_store_backend": store_backend,
        "scheduler_ready": bool(scheduler and scheduler.reconciled),
    }

@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
async def detailed_health_check():
    """Detailed health check with database, job store and timer status."""
    health_status = {
        "status": "healthy",
        "service": "storefront-offer-scheduler",
        "version": "1.0.0",
        "timestamp": time.time(),
        "checks": {}
    }

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    scheduler = getattr(app.state, "offer_scheduler", None)
    if scheduler is None:
        health_status["checks"]["scheduler"] = "not started"
        health_status["status"] = "degraded"
        return health_status

    if bool(JOB_STORE_SETTINGS.get("use_redis", False)):
        check = getattr(scheduler.store, "health_check", None)
        healthy = bool(check()) if check else False
        health_status["checks"]["redis"] = "healthy" if healthy else "unavailable"
        if not healthy:
            health_status["status"] = "degraded"

    snap = scheduler.snapshot()
    health_status["checks"]["timers"] = {
        k: v for k, v in snap.items() if k in {"armed", "next_ready_at", "shutdown", "reconciled"}
    }
    return health_status

@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Storefront Offer Scheduler API",
        "version": "1.0.0",
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }

app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["storefront"],
        log_level="info",
        access_log=True
    )
