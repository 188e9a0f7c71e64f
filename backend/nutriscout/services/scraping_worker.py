"""Background scraping job worker.

Jobs are rows in ``scraping_jobs``. Any number of workers (API-triggered or
scheduled) may drain the queue at once: a job only runs after a conditional
``pending -> running`` update succeeds, so each attempt runs exactly once.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.config import settings
from nutriscout.models.scraping_job import ScrapingJob
from nutriscout.models.store import Store
from nutriscout.scrapers.base import ScrapeContext
from nutriscout.scrapers.factory import AdapterFactory, get_adapter_factory
from nutriscout.services.product_service import ProductService

logger = structlog.get_logger(__name__)


@dataclass
class JobRunResult:
    job_id: uuid.UUID
    status: str  # completed | retry_scheduled | failed | already_claimed
    products_found: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"job_id": str(self.job_id), "status": self.status}
        if self.status == "completed":
            data["products_found"] = self.products_found
        if self.error:
            data["error"] = self.error
        return data


class ScrapingWorker:
    """Claims pending jobs and runs their brand adapter for each term."""

    def __init__(
        self,
        db: AsyncSession,
        adapter_factory: Optional[AdapterFactory] = None,
        max_jobs: Optional[int] = None,
        max_terms: Optional[int] = None,
        backoff_seconds: Optional[int] = None,
    ):
        self.db = db
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.max_jobs = max_jobs or settings.SCRAPING_MAX_JOBS_PER_RUN
        self.max_terms = max_terms or settings.SCRAPING_MAX_PRODUCTS_PER_JOB
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.SCRAPING_RETRY_BACKOFF_SECONDS
        )
        self.product_service = ProductService(db)
        self.logger = logger.bind(service="scraping_worker")

    async def enqueue_job(
        self,
        store_id: uuid.UUID,
        queries: Iterable[str],
        max_retries: Optional[int] = None,
    ) -> ScrapingJob:
        """Create a pending job for ``store_id`` with comma-joined terms.

        Raises:
            ValueError: If no non-empty term is given
        """
        terms = [q.strip().replace(",", " ") for q in queries if q and q.strip()]
        if not terms:
            raise ValueError("At least one search term is required")

        job = ScrapingJob(
            store_id=store_id,
            search_query=",".join(terms),
            status="pending",
            retry_count=0,
            max_retries=max_retries if max_retries is not None else settings.SCRAPING_MAX_RETRIES,
        )
        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)

        self.logger.info("job_enqueued", job_id=str(job.id), store_id=str(store_id), terms=len(terms))
        return job

    async def get_job(self, job_id: uuid.UUID) -> Optional[ScrapingJob]:
        return await self.db.get(ScrapingJob, job_id)

    async def claim_job(self, job_id: uuid.UUID) -> bool:
        """Move a job from pending to running; False if someone else did."""
        result = await self.db.execute(
            update(ScrapingJob)
            .where(and_(ScrapingJob.id == job_id, ScrapingJob.status == "pending"))
            .values(status="running", started_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        claimed = result.rowcount == 1
        if claimed:
            self.logger.info("job_claimed", job_id=str(job_id))
        else:
            self.logger.info("job_already_claimed", job_id=str(job_id))
        return claimed

    async def _due_job_ids(self, limit: int) -> List[uuid.UUID]:
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(ScrapingJob.id)
            .where(and_(
                ScrapingJob.status == "pending",
                or_(ScrapingJob.next_attempt_at.is_(None), ScrapingJob.next_attempt_at <= now),
            ))
            .order_by(ScrapingJob.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def run_once(self, max_jobs: Optional[int] = None) -> List[Dict[str, Any]]:
        """Process up to ``max_jobs`` due jobs, oldest first.

        Returns:
            One summary dict per job considered
        """
        limit = max_jobs or self.max_jobs
        job_ids = await self._due_job_ids(limit)
        self.logger.info("worker_run_started", due=len(job_ids), limit=limit)

        summary: List[Dict[str, Any]] = []
        for job_id in job_ids:
            if not await self.claim_job(job_id):
                summary.append(JobRunResult(job_id=job_id, status="already_claimed").to_dict())
                continue
            result = await self._run_claimed(job_id)
            summary.append(result.to_dict())

        self.logger.info(
            "worker_run_completed",
            processed=len(summary),
            completed=sum(1 for s in summary if s["status"] == "completed"),
            failed=sum(1 for s in summary if s["status"] == "failed"),
        )
        return summary

    async def _run_claimed(self, job_id: uuid.UUID) -> JobRunResult:
        job = await self.db.get(ScrapingJob, job_id)
        await self.db.refresh(job)

        try:
            products_found = await self._execute(job)
        except Exception as e:
            await self.db.rollback()
            await self.db.refresh(job)
            return await self._mark_failed(job, str(e))

        job.status = "completed"
        job.products_found = products_found
        job.error_message = None
        job.completed_at = datetime.now(timezone.utc)
        await self.db.commit()

        self.logger.info("job_completed", job_id=str(job_id), products_found=products_found)
        return JobRunResult(job_id=job_id, status="completed", products_found=products_found)

    async def _execute(self, job: ScrapingJob) -> int:
        """Scrape every term of ``job``; returns the number of products saved.

        Raises:
            RuntimeError: Store missing, disabled or without adapter, no usable
                term, or every term failed
        """
        store = await self.db.get(Store, job.store_id)
        if store is None:
            raise RuntimeError(f"Store {job.store_id} not found")
        if not store.scraping_enabled:
            raise RuntimeError(f"Scraping disabled for store {store.id}")

        adapter = self.adapter_factory.create_brand_adapter(store.brand)
        if adapter is None:
            raise RuntimeError(f"No brand adapter for {store.brand!r}")

        terms = job.search_terms[:self.max_terms]
        if not terms:
            raise RuntimeError("Job has no valid search terms")
        context = ScrapeContext(
            store_id=str(store.id),
            store_name=store.name,
            store_brand=store.brand,
            store_website=store.website_url,
        )

        saved = 0
        errors: List[str] = []
        for term in terms:
            try:
                products = await adapter.scrape(term, context)
            except Exception as e:
                self.logger.warning("job_term_failed", job_id=str(job.id), term=term, error=str(e))
                errors.append(f"{term}: {e}")
                continue
            saved += await self.product_service.save_products(store.id, products, search_query=term)

        if len(errors) == len(terms):
            raise RuntimeError("; ".join(errors))
        return saved

    async def _mark_failed(self, job: ScrapingJob, error: str) -> JobRunResult:
        now = datetime.now(timezone.utc)
        job.error_message = error[:2000]

        if job.retry_count < job.max_retries:
            delay = self.backoff_seconds * (2 ** job.retry_count)
            job.status = "pending"
            job.retry_count += 1
            job.next_attempt_at = now + timedelta(seconds=delay)
            await self.db.commit()
            self.logger.warning(
                "job_retry_scheduled",
                job_id=str(job.id),
                retry_count=job.retry_count,
                delay_seconds=delay,
                error=error,
            )
            return JobRunResult(job_id=job.id, status="retry_scheduled", error=error)

        job.status = "failed"
        job.completed_at = now
        await self.db.commit()
        self.logger.error("job_failed", job_id=str(job.id), retry_count=job.retry_count, error=error)
        return JobRunResult(job_id=job.id, status="failed", error=error)
