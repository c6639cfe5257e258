"""
CivicTrack - FastAPI Application Entry Point

Citizen issue tracker core: priority fusion on submission, SLA tracking on
every read and on a periodic sweep, and hotspot clustering for staff.
"""

from typing import Optional
import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civictrack.core.settings import settings
from civictrack.dependencies import get_issue_service
from civictrack.routes import admin, health, issues
from civictrack.services.sla_scheduler import SLAScheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Issue prioritisation, SLA lifecycle and hotspot clustering for citizen reports",
    debug=settings.DEBUG,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(f"🔥 Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


sla_scheduler: Optional[SLAScheduler] = None


async def scheduled_sla_sweep():
    """One scheduled SLA sweep. Failures are logged and retried on the next run."""
    try:
        service = get_issue_service()
        loop = asyncio.get_event_loop()
        summary = await loop.run_in_executor(None, service.run_sla_sweep)
        logger.info(f"Scheduled SLA sweep: {summary}")
    except Exception as e:
        logger.error(f"❌ Error in scheduled SLA sweep: {e}", exc_info=True)


@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    Firestore connection (unless USE_MOCK_DB) and the periodic SLA sweep.
    """
    global sla_scheduler
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not settings.USE_MOCK_DB:
        try:
            from civictrack.config.firebase import initialize_firestore
            initialize_firestore()
        except Exception as e:
            logger.warning(f"Firestore initialization failed: {e}. The app will start but database operations may fail.")

    if settings.SLA_SWEEP_ENABLED:
        # Scheduled even without a database: each run retries the connection
        sla_scheduler = SLAScheduler(interval_seconds=settings.SLA_SWEEP_INTERVAL_HOURS * 3600)
        sla_scheduler.start(scheduled_sla_sweep)
    else:
        logger.info("Periodic SLA sweep disabled (SLA_SWEEP_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    if sla_scheduler is not None:
        sla_scheduler.stop()
    logger.info(f"Shutting down {settings.APP_NAME}")


app.include_router(health.router)
app.include_router(issues.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
    }
