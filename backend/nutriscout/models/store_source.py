"""Per-store scrape source configuration."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text, ForeignKey, Boolean, Integer, DateTime, UniqueConstraint
from sqlalchemy import JSON as JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutriscout.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from nutriscout.models.store import Store


SOURCE_TYPES = ("brand", "website", "instagram")


class StoreSource(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A place to scrape products for a store.

    A store may have several sources (brand site, own website, social
    feed). Lower ``priority`` runs first.
    """

    __tablename__ = "store_sources"
    __table_args__ = (
        UniqueConstraint("store_id", "source_type", "source_identifier", name="uq_store_source"),
    )

    store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("nearby_stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    source_type: Mapped[str] = mapped_column(
        String(20), nullable=False,
        comment="Type: 'brand', 'website', 'instagram'"
    )
    source_identifier: Mapped[str] = mapped_column(
        String(500), nullable=False,
        comment="URL, brand key or social account id"
    )
    config: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    # Last run bookkeeping
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_status: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Status: 'completed', 'failed', 'skipped'"
    )
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    store: Mapped["Store"] = relationship(back_populates="sources")

    def __repr__(self) -> str:
        return f"<StoreSource(id={self.id}, store_id={self.store_id}, type='{self.source_type}', priority={self.priority})>"
