"""Per-store scrape source registry.

Sources tell the orchestrator where, besides a chain's brand adapter, a
store's products can be found: its own website or a social feed.
"""

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.models.store_source import SOURCE_TYPES, StoreSource

logger = structlog.get_logger(__name__)

DEFAULT_PRIORITY = 10
SOURCE_STATUSES = ("completed", "failed", "skipped")


class SourceRegistryService:
    """Reads and maintains ``store_sources`` rows."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="source_registry")

    async def get_sources_for_store(self, store_id: uuid.UUID) -> List[StoreSource]:
        """Active sources of one store, lowest priority value first."""
        result = await self.db.execute(
            select(StoreSource)
            .where(and_(StoreSource.store_id == store_id, StoreSource.active == True))  # noqa: E712
            .order_by(StoreSource.priority.asc(), StoreSource.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_sources_grouped_by_store(
        self, store_ids: Iterable[uuid.UUID]
    ) -> Dict[uuid.UUID, List[StoreSource]]:
        """Active sources for many stores in one query, keyed by store id.

        Stores without active sources are absent from the mapping.
        """
        ids = [store_id for store_id in store_ids if store_id is not None]
        if not ids:
            return {}

        result = await self.db.execute(
            select(StoreSource)
            .where(and_(StoreSource.store_id.in_(ids), StoreSource.active == True))  # noqa: E712
            .order_by(StoreSource.priority.asc(), StoreSource.created_at.asc())
        )

        grouped: Dict[uuid.UUID, List[StoreSource]] = defaultdict(list)
        for source in result.scalars().all():
            grouped[source.store_id].append(source)
        return dict(grouped)

    async def ensure_default_sources(self, stores: Iterable[Any]) -> int:
        """Create a website source for every store with a website URL.

        Chain stores get one too; their overlap with brand adapter results is
        removed when a store's products are deduplicated. Idempotent on
        (store_id, "website", url).
        Accepts Store rows or NearbyStore objects.

        Returns:
            Number of sources created
        """
        candidates = [
            s for s in stores
            if getattr(s, "id", None) and getattr(s, "website_url", None)
        ]
        if not candidates:
            return 0

        result = await self.db.execute(
            select(StoreSource.store_id, StoreSource.source_type, StoreSource.source_identifier)
            .where(StoreSource.store_id.in_([s.id for s in candidates]))
        )
        existing = {(row.store_id, row.source_type, row.source_identifier) for row in result.all()}

        created = 0
        for store in candidates:
            key = (store.id, "website", store.website_url)
            if key in existing:
                continue
            self.db.add(StoreSource(
                store_id=store.id,
                source_type="website",
                source_identifier=store.website_url,
                config={},
                active=True,
                priority=DEFAULT_PRIORITY,
            ))
            existing.add(key)
            created += 1

        if created:
            await self.db.commit()
            self.logger.info("default_sources_created", count=created)
        return created

    async def add_source(
        self,
        store_id: uuid.UUID,
        source_type: str,
        source_identifier: str,
        config: Optional[Dict[str, Any]] = None,
        priority: int = DEFAULT_PRIORITY,
        active: bool = True,
    ) -> StoreSource:
        """Register a source manually (e.g. a shop's Instagram account)."""
        if source_type not in SOURCE_TYPES:
            raise ValueError(f"Invalid source_type: {source_type}")

        source = StoreSource(
            store_id=store_id,
            source_type=source_type,
            source_identifier=source_identifier,
            config=config or {},
            priority=priority,
            active=active,
        )
        self.db.add(source)
        await self.db.commit()
        await self.db.refresh(source)
        self.logger.info("source_added", store_id=str(store_id), source_type=source_type)
        return source

    async def record_source_outcome(
        self,
        source_id: uuid.UUID,
        status: str,
        error: Optional[str] = None,
        commit: bool = True,
    ) -> None:
        """Stamp last_run_at / last_status / last_error on a source."""
        if status not in SOURCE_STATUSES:
            raise ValueError(f"Invalid source status: {status}")

        await self.db.execute(
            update(StoreSource)
            .where(StoreSource.id == source_id)
            .values(
                last_run_at=datetime.now(timezone.utc),
                last_status=status,
                last_error=error[:2000] if error else None,
            )
        )
        if commit:
            await self.db.commit()
