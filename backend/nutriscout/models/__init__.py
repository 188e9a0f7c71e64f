"""SQLAlchemy models for NutriScout.

All models are imported here so ``Base.metadata`` knows every table.
"""

from nutriscout.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from nutriscout.models.store import Store
from nutriscout.models.store_source import StoreSource
from nutriscout.models.scraped_product import ScrapedProductRecord
from nutriscout.models.scraping_job import ScrapingJob
from nutriscout.models.search_cache import SearchCacheEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Store",
    "StoreSource",
    "ScrapedProductRecord",
    "ScrapingJob",
    "SearchCacheEntry",
]
