"""Persisted raw scrape results."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, ForeignKey, Numeric, DateTime, Index, func
from sqlalchemy import JSON as JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutriscout.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from nutriscout.models.store import Store


class ScrapedProductRecord(UUIDPrimaryKeyMixin, Base):
    """A product observed at a store during a scrape.

    Rows are append-only observations; ``price_current`` is always positive.
    """

    __tablename__ = "scraped_products"
    __table_args__ = (
        Index("ix_scraped_products_store_scraped", "store_id", "scraped_at"),
    )

    store_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("nearby_stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    search_query: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    price_current: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price_regular: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    product_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    nutritional_claims: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    nutrition_info: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    store: Mapped["Store"] = relationship(back_populates="products")

    def __repr__(self) -> str:
        return f"<ScrapedProductRecord(id={self.id}, store_id={self.store_id}, name='{self.product_name}', price={self.price_current})>"
