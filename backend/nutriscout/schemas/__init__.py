"""Pydantic schemas for the NutriScout API.

All request/response models are defined here for easy import.
"""

from nutriscout.schemas.common import ApiResponse, ErrorDetail, ErrorResponse
from nutriscout.schemas.health import HealthCheckResponse
from nutriscout.schemas.store import NearbyStoreResponse, StoreProductResponse
from nutriscout.schemas.product_search import (
    ProductSearchRequest,
    ProductSearchResponse,
    SearchProductResponse,
)
from nutriscout.schemas.scraping import (
    JobRunSummary,
    JobStatusResponse,
    ScrapeTriggerRequest,
    ScrapeTriggerResponse,
    WorkerRunResponse,
)
from nutriscout.schemas.spots import HealthySpotResponse, SpotSearchRequest, SpotSearchResponse

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    # Health
    "HealthCheckResponse",
    # Stores
    "NearbyStoreResponse",
    "StoreProductResponse",
    # Product search
    "ProductSearchRequest",
    "ProductSearchResponse",
    "SearchProductResponse",
    # Scraping
    "ScrapeTriggerRequest",
    "ScrapeTriggerResponse",
    "JobStatusResponse",
    "JobRunSummary",
    "WorkerRunResponse",
    # Spots
    "SpotSearchRequest",
    "HealthySpotResponse",
    "SpotSearchResponse",
]
