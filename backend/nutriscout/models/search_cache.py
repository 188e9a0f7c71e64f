"""Geography + query keyed product search cache."""

from datetime import datetime

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy import JSON as JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nutriscout.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SearchCacheEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Cached search results for a geohash cell and lowercased query."""

    __tablename__ = "product_search_cache"
    __table_args__ = (
        UniqueConstraint("geohash", "query", name="uq_search_cache_geohash_query"),
    )

    geohash: Mapped[str] = mapped_column(String(12), nullable=False, index=True)
    query: Mapped[str] = mapped_column(String(200), nullable=False)
    results: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    result_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stores_searched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<SearchCacheEntry(geohash='{self.geohash}', query='{self.query}', result_count={self.result_count})>"
