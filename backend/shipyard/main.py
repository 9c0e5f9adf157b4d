"""
FastAPI main application entry point.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shipyard.api.deps import close_cluster
from shipyard.api.v1.router import api_router
from shipyard.core.config import settings
from shipyard.core.database import engine
from shipyard.core.event_handlers import register_all_handlers
from shipyard.core.exception_handlers import register_exception_handlers
from shipyard.services.task_dispatcher import task_dispatcher

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create scheduler
scheduler = AsyncIOScheduler()

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Deployment orchestration API: builds, cluster resources and live status for apps",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/openapi.json",
)

# Register domain exception handlers
register_exception_handlers(app)

cors_origins = settings.get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-API-Key",
        "Accept",
        "Origin",
    ],
    max_age=600,
)


async def check_database() -> bool:
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.
    """
    register_all_handlers()

    if await check_database():
        logger.info("Database connection successful")

    # Builds queued while no slot freed up are picked up by the periodic drain
    scheduler.add_job(
        task_dispatcher.dispatch_build_queue_drain,
        "interval",
        seconds=settings.BUILD_QUEUE_POLL_INTERVAL,
        id="build-queue-drain",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started; draining build queue every {settings.BUILD_QUEUE_POLL_INTERVAL}s")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Shutdown event handler.
    """
    scheduler.shutdown(wait=False)
    await close_cluster()
    await engine.dispose()
    logger.info("Application shutdown complete")


@app.get("/api/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status and component checks
    """
    db_healthy = await check_database()
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "components": {"database": "healthy" if db_healthy else "unhealthy"},
            "version": settings.APP_VERSION,
        },
    )


# Include API v1 router
app.include_router(api_router, prefix="/api/v1")
