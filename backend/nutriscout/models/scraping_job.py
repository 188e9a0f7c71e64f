"""Queued background scraping jobs."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text, ForeignKey, Integer, DateTime, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutriscout.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from nutriscout.models.store import Store


JOB_STATUSES = ("pending", "running", "completed", "failed")


class ScrapingJob(UUIDPrimaryKeyMixin, Base):
    """A request to scrape a list of terms at one store.

    Lifecycle: pending -> running -> completed | failed, with running ->
    pending while retries remain. Only a conditional update can move a job
    from pending to running.
    """

    __tablename__ = "scraping_jobs"
    __table_args__ = (
        Index("ix_scraping_jobs_status_created", "status", "created_at"),
    )

    store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("nearby_stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    search_query: Mapped[str] = mapped_column(
        Text, nullable=False,
        comment="Comma-joined search terms"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="Status: 'pending', 'running', 'completed', 'failed'"
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    next_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Backoff gate; job is not claimable before this time"
    )

    products_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timing
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    store: Mapped["Store"] = relationship(back_populates="scraping_jobs")

    @property
    def search_terms(self) -> list[str]:
        return [term.strip() for term in self.search_query.split(",") if term.strip()]

    def __repr__(self) -> str:
        return f"<ScrapingJob(id={self.id}, store_id={self.store_id}, status='{self.status}', retry_count={self.retry_count})>"
