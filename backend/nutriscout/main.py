"""NutriScout Backend -- FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from nutriscout.api.v1.router import api_v1_router
from nutriscout.config import settings
from nutriscout.core.exceptions import NotFoundError
from nutriscout.db.session import async_session_factory, engine
from nutriscout.models.base import Base
from nutriscout.schemas import ErrorDetail, ErrorResponse
from nutriscout.scrapers.factory import get_adapter_factory
from nutriscout.scrapers.register_adapters import register_all_adapters
from nutriscout.scrapers.scheduler import ScrapingScheduler
from nutriscout.services.rate_limit import get_rate_limiter

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[ScrapingScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    global scheduler

    # Startup
    logger.info("Starting NutriScout API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Auto-create tables on startup (safe for fresh deployments)
    try:
        # Import all models so they register with Base.metadata
        import nutriscout.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified/created")
    except SQLAlchemyError as e:
        logger.error(f"Database init failed: {e}", exc_info=True)

    # A supported brand without an adapter must stop startup
    logger.info("Registering scrape adapters...")
    register_all_adapters()

    if settings.ENVIRONMENT != "test" and settings.SCHEDULER_ENABLED:
        logger.info("Initializing scraping scheduler...")
        scheduler = ScrapingScheduler(async_session_factory)
        scheduler.start()
    else:
        logger.info("Scheduler disabled")

    limiter = get_rate_limiter()
    if await limiter.health_check():
        logger.info("Redis rate limiter connected successfully")
    else:
        logger.warning("Redis unavailable, rate limiting runs in degraded in-memory mode")

    yield

    # Shutdown
    logger.info("Shutting down NutriScout API server...")

    if scheduler:
        logger.info("Stopping scraping scheduler...")
        scheduler.stop()

    try:
        await get_adapter_factory().aclose()
        logger.info("Adapter clients closed")
    except Exception as e:
        logger.warning(f"Error closing adapter clients: {e}")

    try:
        await limiter.close()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.warning(f"Error closing rate limiter: {e}")


app = FastAPI(
    title="NutriScout API",
    description="Nearby grocery product discovery for a nutrition coach",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(error=ErrorDetail(code="database_unavailable", message="Database unavailable")).model_dump(),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(error=ErrorDetail(code="not_found", message=exc.message)).model_dump(),
    )


# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "NutriScout API",
        "version": "0.1.0",
        "description": "Nearby grocery product discovery",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
