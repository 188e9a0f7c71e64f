"""Geography + query keyed cache for product searches.

Entries are keyed by the geohash cell of the query point and the
lowercased query, so nearby users searching the same thing share results.
Empty results expire after minutes, non-empty ones after about a day.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pygeohash
import structlog
from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.config import settings
from nutriscout.models.search_cache import SearchCacheEntry

logger = structlog.get_logger(__name__)


@dataclass
class CachedSearch:
    products: List[Dict[str, Any]]
    stores_searched: int
    expires_at: datetime


def normalize_query(query: str) -> str:
    return " ".join(query.lower().split())


class SearchCacheService:
    """Read/write access to ``product_search_cache``."""

    def __init__(
        self,
        db: AsyncSession,
        precision: Optional[int] = None,
        ttl: Optional[timedelta] = None,
        empty_ttl: Optional[timedelta] = None,
    ):
        self.db = db
        self.precision = precision or settings.SEARCH_CACHE_GEOHASH_PRECISION
        self.ttl = ttl or timedelta(hours=settings.SEARCH_CACHE_TTL_HOURS)
        self.empty_ttl = empty_ttl or timedelta(minutes=settings.SEARCH_CACHE_EMPTY_TTL_MINUTES)
        self.logger = logger.bind(service="search_cache")

    def cache_key(self, lat: float, lon: float, query: str) -> Tuple[str, str]:
        """(geohash cell, normalized query) for a search."""
        return pygeohash.encode(lat, lon, precision=self.precision), normalize_query(query)

    async def get(self, lat: float, lon: float, query: str) -> Optional[CachedSearch]:
        """Return the unexpired entry for this cell and query, if any."""
        geohash, key_query = self.cache_key(lat, lon, query)
        now = datetime.now(timezone.utc)

        result = await self.db.execute(
            select(SearchCacheEntry).where(and_(
                SearchCacheEntry.geohash == geohash,
                SearchCacheEntry.query == key_query,
                SearchCacheEntry.expires_at > now,
            ))
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            self.logger.debug("search_cache_miss", geohash=geohash, query=key_query)
            return None

        self.logger.info("search_cache_hit", geohash=geohash, query=key_query, results=entry.result_count)
        return CachedSearch(
            products=list(entry.results or []),
            stores_searched=entry.stores_searched,
            expires_at=entry.expires_at,
        )

    async def set(
        self,
        lat: float,
        lon: float,
        query: str,
        products: List[Dict[str, Any]],
        stores_searched: int,
    ) -> datetime:
        """Insert or replace the entry for this cell and query.

        Returns:
            The expiry time that was stored
        """
        geohash, key_query = self.cache_key(lat, lon, query)
        expires_at = datetime.now(timezone.utc) + (self.ttl if products else self.empty_ttl)

        result = await self.db.execute(
            select(SearchCacheEntry).where(and_(
                SearchCacheEntry.geohash == geohash,
                SearchCacheEntry.query == key_query,
            ))
        )
        entry = result.scalar_one_or_none()

        if entry is None:
            entry = SearchCacheEntry(geohash=geohash, query=key_query)
            self.db.add(entry)

        entry.results = products
        entry.result_count = len(products)
        entry.stores_searched = stores_searched
        entry.expires_at = expires_at

        await self.db.commit()
        self.logger.info(
            "search_cache_stored",
            geohash=geohash,
            query=key_query,
            results=len(products),
            expires_at=expires_at.isoformat(),
        )
        return expires_at

    async def purge_expired(self) -> int:
        """Delete expired entries; returns the number removed."""
        result = await self.db.execute(
            delete(SearchCacheEntry).where(SearchCacheEntry.expires_at <= datetime.now(timezone.utc))
        )
        await self.db.commit()
        self.logger.info("search_cache_purged", removed=result.rowcount)
        return result.rowcount or 0
