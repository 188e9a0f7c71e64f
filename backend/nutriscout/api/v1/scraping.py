"""Background scraping endpoints, protected by the cron secret."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.dependencies import get_db, get_factory, get_scraping_worker, require_cron_secret
from nutriscout.models.store import Store
from nutriscout.schemas import (
    ApiResponse,
    JobRunSummary,
    JobStatusResponse,
    ScrapeTriggerRequest,
    ScrapeTriggerResponse,
    WorkerRunResponse,
)
from nutriscout.scrapers.factory import AdapterFactory
from nutriscout.services.scraping_worker import ScrapingWorker

router = APIRouter(dependencies=[Depends(require_cron_secret)])
logger = structlog.get_logger(__name__)


@router.post("/trigger", response_model=ApiResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_scrape(
    body: ScrapeTriggerRequest,
    db: AsyncSession = Depends(get_db),
    factory: AdapterFactory = Depends(get_factory),
    worker: ScrapingWorker = Depends(get_scraping_worker),
):
    """Queue a scraping job for one store and a list of product terms."""
    store = await db.get(Store, body.store_id)
    if store is None:
        raise HTTPException(status_code=404, detail="Store not found")
    if not store.scraping_enabled:
        raise HTTPException(status_code=403, detail="Scraping is disabled for this store")
    if not factory.has_brand_adapter(store.brand):
        raise HTTPException(status_code=400, detail=f"No scraper available for brand {store.brand!r}")

    try:
        job = await worker.enqueue_job(store.id, body.products)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ApiResponse(
        status="success",
        data=ScrapeTriggerResponse(job_id=job.id, status=job.status, products=job.search_terms),
    )


@router.post("/worker", response_model=ApiResponse)
async def run_worker(
    max_jobs: Optional[int] = Query(None, ge=1, le=20),
    worker: ScrapingWorker = Depends(get_scraping_worker),
):
    """Drain due jobs from the queue once."""
    summary = await worker.run_once(max_jobs)
    return ApiResponse(
        status="success",
        data=WorkerRunResponse(
            processed=len(summary),
            jobs=[JobRunSummary.model_validate(item) for item in summary],
        ),
    )


@router.get("/jobs/{job_id}", response_model=ApiResponse)
async def job_status(
    job_id: UUID,
    worker: ScrapingWorker = Depends(get_scraping_worker),
):
    """Current state of a scraping job."""
    job = await worker.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return ApiResponse(status="success", data=JobStatusResponse.model_validate(job))
