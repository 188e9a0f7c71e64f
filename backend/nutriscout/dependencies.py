"""FastAPI dependency injection providers."""

import secrets
from typing import AsyncGenerator, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.config import settings
from nutriscout.db.session import async_session_factory
from nutriscout.scrapers.factory import AdapterFactory, get_adapter_factory
from nutriscout.services.discovery import GeoDiscoveryService
from nutriscout.services.orchestrator import ProductSearchOrchestrator
from nutriscout.services.rate_limit import RateLimiter, get_rate_limiter
from nutriscout.services.scraping_worker import ScrapingWorker
from nutriscout.services.spot_ranker import SpotRanker

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is automatically committed on success or rolled back on error.
    Always closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_factory() -> AdapterFactory:
    """The process-wide adapter factory."""
    return get_adapter_factory()


def get_limiter() -> RateLimiter:
    return get_rate_limiter()


async def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> None:
    """Guard for scraping endpoints: ``Authorization: Bearer <CRON_SECRET>``.

    Raises 503 when no secret is configured, 401 when it does not match.
    """
    configured = settings.CRON_SECRET
    if not configured:
        logger.warning("cron_secret_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scraping endpoints are disabled (CRON_SECRET not configured)",
        )

    if not credentials or not secrets.compare_digest(credentials.credentials.encode(), configured.encode()):
        logger.warning("cron_secret_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_client_ip(request: Request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_search_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_limiter),
) -> None:
    """Reject the request with 429 when the client exceeded its budget."""
    client_ip = get_client_ip(request)
    result = await limiter.hit(f"search:{client_ip}")
    if not result.allowed:
        logger.info("search_rate_limited", client_ip=client_ip, limit=result.limit)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many searches, try again later",
            headers={"Retry-After": str(result.reset_seconds)},
        )


async def get_discovery_service(db: AsyncSession = Depends(get_db)) -> GeoDiscoveryService:
    return GeoDiscoveryService(db)


async def get_search_orchestrator(
    db: AsyncSession = Depends(get_db),
    factory: AdapterFactory = Depends(get_factory),
) -> ProductSearchOrchestrator:
    return ProductSearchOrchestrator(db, adapter_factory=factory)


async def get_scraping_worker(
    db: AsyncSession = Depends(get_db),
    factory: AdapterFactory = Depends(get_factory),
) -> ScrapingWorker:
    return ScrapingWorker(db, adapter_factory=factory)


def get_spot_ranker() -> SpotRanker:
    return SpotRanker()
