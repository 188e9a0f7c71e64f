"""Store model representing physical shops discovered around users."""

import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutriscout.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from nutriscout.models.store_source import StoreSource
    from nutriscout.models.scraped_product import ScrapedProductRecord
    from nutriscout.models.scraping_job import ScrapingJob


class Store(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Physical store found through OpenStreetMap.

    Rows are upserted on every discovery keyed by ``osm_id`` and never
    hard-deleted. ``scraping_enabled`` is owned by operators once the row
    exists.
    """

    __tablename__ = "nearby_stores"

    osm_id: Mapped[str] = mapped_column(
        String(50), unique=True, index=True, nullable=False,
        comment="OSM element id, e.g. 'node/123456'"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, index=True,
        comment="Canonical brand key (COTO, CARREFOUR, ...)"
    )
    store_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="supermarket",
        comment="supermarket, convenience, health_food, produce, butcher, fishmonger, bakery, deli, restaurant, cafe"
    )

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    website_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    scraping_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Whether orchestrated scraping may target this store"
    )

    # Relationships
    sources: Mapped[list["StoreSource"]] = relationship(back_populates="store", cascade="all, delete-orphan")
    products: Mapped[list["ScrapedProductRecord"]] = relationship(back_populates="store", cascade="all, delete-orphan")
    scraping_jobs: Mapped[list["ScrapingJob"]] = relationship(back_populates="store", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, osm_id='{self.osm_id}', name='{self.name}', brand={self.brand!r})>"
