"""Product service for persisting scrape results.

Every product an adapter returns for a store is stored as an observation in
``scraped_products``. Invalid prices never reach this table: ScrapedProduct
refuses them at construction time.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.models.scraped_product import ScrapedProductRecord
from nutriscout.scrapers.base import ScrapedProduct

logger = structlog.get_logger(__name__)


class ProductService:
    """Stores and queries scraped product observations."""

    def __init__(self, db: AsyncSession):
        """Initialize product service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="product_service")

    async def save_products(
        self,
        store_id: UUID,
        products: Iterable[ScrapedProduct],
        search_query: Optional[str] = None,
        commit: bool = True,
    ) -> int:
        """Insert one row per product for ``store_id``.

        Returns:
            Number of rows added
        """
        rows = [
            ScrapedProductRecord(
                store_id=store_id,
                search_query=search_query[:200] if search_query else None,
                product_name=product.product_name,
                brand=product.brand,
                price_current=product.price_current,
                price_regular=product.price_regular,
                unit=product.unit,
                quantity=product.quantity,
                image_url=product.image_url,
                product_url=product.product_url,
                nutritional_claims=list(product.nutritional_claims),
                nutrition_info=dict(product.nutrition_info),
            )
            for product in products
        ]
        if not rows:
            return 0

        self.db.add_all(rows)
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        self.logger.info("products_saved", store_id=str(store_id), count=len(rows), query=search_query)
        return len(rows)

    async def get_recent_products(
        self,
        store_id: UUID,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[ScrapedProductRecord]:
        """Latest observations for a store, newest first."""
        conditions = [ScrapedProductRecord.store_id == store_id]
        if since is not None:
            conditions.append(ScrapedProductRecord.scraped_at >= since)

        result = await self.db.execute(
            select(ScrapedProductRecord)
            .where(and_(*conditions))
            .order_by(ScrapedProductRecord.scraped_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def prune_old_products(self, older_than_days: int = 30) -> int:
        """Delete observations older than the retention window."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        result = await self.db.execute(
            delete(ScrapedProductRecord).where(ScrapedProductRecord.scraped_at < cutoff)
        )
        await self.db.commit()
        self.logger.info("old_products_pruned", removed=result.rowcount, older_than_days=older_than_days)
        return result.rowcount or 0
