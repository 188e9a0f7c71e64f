"""APScheduler-based scraping scheduler.

Two recurring jobs keep the product data warm without user traffic:
- an interval job that drains the scraping job queue
- a daily job that enqueues the staple keyword list for every scrapeable
  branded store and purges stale cache and product rows
"""

from datetime import datetime, timezone
from typing import Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nutriscout.config import settings
from nutriscout.models.store import Store
from nutriscout.scrapers.factory import AdapterFactory, get_adapter_factory
from nutriscout.services.product_service import ProductService
from nutriscout.services.scraping_worker import ScrapingWorker
from nutriscout.services.search_cache import SearchCacheService

logger = structlog.get_logger(__name__)

WORKER_JOB_ID = "scraping_worker"
DAILY_JOB_ID = "daily_scrape"


class ScrapingScheduler:
    """Manages the periodic worker and daily enqueue jobs.

    Errors inside a job are logged and never stop the scheduler.
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        """Initialize scraping scheduler.

        Args:
            db_session_factory: Async session factory for database access
            adapter_factory: Adapter factory passed to the worker
        """
        self.db_session_factory = db_session_factory
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="scraping_scheduler")

    def start(self) -> None:
        """Register the recurring jobs and start the scheduler."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        self.scheduler.add_job(
            func=self._run_worker_wrapper,
            trigger=IntervalTrigger(
                minutes=settings.WORKER_INTERVAL_MINUTES,
                start_date=datetime.now(timezone.utc),
                timezone="UTC",
            ),
            id=WORKER_JOB_ID,
            name="Drain scraping queue",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            func=self._run_daily_wrapper,
            trigger=CronTrigger(hour=settings.DAILY_SCRAPE_HOUR, minute=0, timezone="UTC"),
            id=DAILY_JOB_ID,
            name="Daily staple scrape",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self.logger.info(
            "scheduler_started",
            worker_interval_minutes=settings.WORKER_INTERVAL_MINUTES,
            daily_hour=settings.DAILY_SCRAPE_HOUR,
        )

    def stop(self) -> None:
        """Stop the scheduler gracefully.

        Waits for all running jobs to complete before shutting down.
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    async def _run_worker_wrapper(self) -> None:
        try:
            await self.run_worker()
        except Exception as e:
            self.logger.error("scheduled_worker_failed", error=str(e), exc_info=True)

    async def _run_daily_wrapper(self) -> None:
        try:
            await self.run_daily()
        except Exception as e:
            self.logger.error("daily_scrape_failed", error=str(e), exc_info=True)

    async def run_worker(self) -> int:
        """Run one worker pass; returns the number of jobs processed."""
        async with self.db_session_factory() as db:
            worker = ScrapingWorker(db, adapter_factory=self.adapter_factory)
            summary = await worker.run_once()
        return len(summary)

    async def run_daily(self) -> Dict[str, int]:
        """Enqueue the daily keywords for every scrapeable branded store.

        Returns:
            Counts of jobs enqueued and rows purged
        """
        keywords = settings.get_daily_scrape_keywords()
        stats = {"jobs_enqueued": 0, "cache_purged": 0, "products_pruned": 0}

        async with self.db_session_factory() as db:
            result = await db.execute(
                select(Store).where(Store.scraping_enabled == True)  # noqa: E712
            )
            stores = [s for s in result.scalars().all() if self.adapter_factory.has_brand_adapter(s.brand)]

            if keywords:
                worker = ScrapingWorker(db, adapter_factory=self.adapter_factory)
                for store in stores:
                    await worker.enqueue_job(store.id, keywords)
                    stats["jobs_enqueued"] += 1

            stats["cache_purged"] = await SearchCacheService(db).purge_expired()
            stats["products_pruned"] = await ProductService(db).prune_old_products()

        self.logger.info("daily_scrape_enqueued", stores=len(stores), keywords=len(keywords), **stats)
        return stats

    def get_jobs_status(self) -> dict:
        """Next run time and trigger of each scheduled job."""
        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
