"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.dependencies import get_db, get_limiter
from nutriscout.schemas import HealthCheckResponse
from nutriscout.services.rate_limit import RateLimiter

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_limiter),
):
    """Return service health status.

    Checks connectivity to:
    - Database
    - Redis (rate limiter; degraded mode is still usable)
    """
    services = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    services["database"] = db_status

    redis_status = "ok" if await limiter.health_check() else "error: ping failed"
    services["redis"] = redis_status

    overall_status = "ok" if all(s == "ok" for s in services.values()) else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        redis=redis_status,
        services=services,
    )
