"""Scraping job request/response schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ScrapeTriggerRequest(BaseModel):
    """Body of POST /scraping/trigger."""

    store_id: UUID
    products: List[str] = Field(..., min_length=1, max_length=20)


class ScrapeTriggerResponse(BaseModel):
    job_id: UUID
    status: str
    products: List[str]


class JobStatusResponse(BaseModel):
    """Current state of a scraping job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    search_query: str
    status: str
    retry_count: int
    max_retries: int
    products_found: int
    error_message: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobRunSummary(BaseModel):
    job_id: UUID
    status: str
    products_found: Optional[int] = None
    error: Optional[str] = None


class WorkerRunResponse(BaseModel):
    processed: int
    jobs: List[JobRunSummary]
