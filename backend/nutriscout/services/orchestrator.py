"""Hyperlocal product search orchestration.

Cache -> discovery -> bounded fan-out over stores -> filters -> cache.

Scraping runs concurrently (a few stores at a time) but every database
write happens sequentially on the orchestrator's single session after each
batch completes.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.config import settings
from nutriscout.models.store_source import StoreSource
from nutriscout.scrapers.base import ScrapeContext, ScrapedProduct
from nutriscout.scrapers.factory import AdapterFactory, get_adapter_factory
from nutriscout.services.discovery import GeoDiscoveryService, NearbyStore
from nutriscout.services.product_filters import (
    ContentFilter,
    FilterRules,
    apply_content_and_relevance,
    apply_intolerances,
    get_filter_rules,
)
from nutriscout.services.product_service import ProductService
from nutriscout.services.search_cache import SearchCacheService
from nutriscout.services.source_registry import SourceRegistryService

logger = structlog.get_logger(__name__)


@dataclass
class SearchResult:
    """Aggregate returned to API callers."""

    products: List[ScrapedProduct]
    stores_searched: int
    cache_hit: bool
    search_latency_ms: int
    filtered_out_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "stores_searched": self.stores_searched,
            "cache_hit": self.cache_hit,
            "search_latency_ms": self.search_latency_ms,
            "filtered_out_count": self.filtered_out_count,
        }


@dataclass
class SourceOutcome:
    source_id: Any
    status: str
    error: Optional[str] = None


@dataclass
class StoreScrape:
    """Products and per-source outcomes of scraping one store."""

    store: NearbyStore
    products: List[ScrapedProduct] = field(default_factory=list)
    outcomes: List[SourceOutcome] = field(default_factory=list)


class ProductSearchOrchestrator:
    """Runs a nearby product search end to end.

    Collaborators default to the real services bound to ``db`` and can be
    replaced individually in tests.
    """

    def __init__(
        self,
        db: AsyncSession,
        adapter_factory: Optional[AdapterFactory] = None,
        discovery: Optional[GeoDiscoveryService] = None,
        source_registry: Optional[SourceRegistryService] = None,
        search_cache: Optional[SearchCacheService] = None,
        product_service: Optional[ProductService] = None,
        rules: Optional[FilterRules] = None,
        concurrency: Optional[int] = None,
        discovery_radius: Optional[int] = None,
    ):
        self.db = db
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.discovery = discovery or GeoDiscoveryService(db)
        self.source_registry = source_registry or SourceRegistryService(db)
        self.search_cache = search_cache or SearchCacheService(db)
        self.product_service = product_service or ProductService(db)
        self.rules = rules or get_filter_rules()
        self.concurrency = max(1, concurrency or settings.SCRAPE_CONCURRENCY)
        self.discovery_radius = discovery_radius or settings.DISCOVERY_RADIUS_METERS
        self.logger = logger.bind(service="orchestrator")

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    async def search_nearby_products(
        self,
        lat: float,
        lon: float,
        query: str,
        force_refresh: bool = False,
        max_stores: Optional[int] = None,
        intolerances: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        """Search ``query`` in stores around (lat, lon).

        Args:
            lat: User latitude
            lon: User longitude
            query: Free-text product query
            force_refresh: Skip the cache lookup
            max_stores: Maximum stores to scrape; 0 or less means cache only
            intolerances: Free-text intolerance tags of the user

        Returns:
            SearchResult with filtered products
        """
        started = time.perf_counter()
        query = query.strip()
        if max_stores is None:
            max_stores = settings.DEFAULT_MAX_STORES

        if not force_refresh:
            cached = await self._from_cache(lat, lon, query, intolerances, started)
            if cached is not None:
                return cached

        if max_stores <= 0:
            self.logger.info("cache_only_miss", query=query)
            return SearchResult(products=[], stores_searched=0, cache_hit=False, search_latency_ms=self._elapsed_ms(started))

        stores = await self.discovery.find_nearby_stores(lat, lon, self.discovery_radius)

        try:
            await self.source_registry.ensure_default_sources(stores)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("default_sources_failed", error=str(e))

        candidates = [s for s in stores if s.scraping_enabled is not False][:max_stores]

        sources_by_store: Dict[Any, List[StoreSource]] = {}
        try:
            sources_by_store = await self.source_registry.get_sources_grouped_by_store(
                [s.id for s in candidates if s.id]
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("source_lookup_failed", error=str(e))

        scraped = await self._scrape_stores(candidates, query, sources_by_store)

        outcome = apply_content_and_relevance(scraped, query, self.rules)
        try:
            await self.search_cache.set(
                lat, lon, query, [p.to_dict() for p in outcome.products], stores_searched=len(candidates)
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("search_cache_write_failed", error=str(e))

        products, removed_intolerance = apply_intolerances(outcome.products, intolerances, self.rules)

        result = SearchResult(
            products=products,
            stores_searched=len(candidates),
            cache_hit=False,
            search_latency_ms=self._elapsed_ms(started),
            filtered_out_count=outcome.removed + removed_intolerance,
        )
        self.logger.info(
            "search_completed",
            query=query,
            stores_discovered=len(stores),
            stores_searched=result.stores_searched,
            scraped=len(scraped),
            removed_content=outcome.removed_content,
            removed_relevance=outcome.removed_relevance,
            removed_intolerance=removed_intolerance,
            returned=len(products),
            latency_ms=result.search_latency_ms,
        )
        return result

    async def _from_cache(
        self,
        lat: float,
        lon: float,
        query: str,
        intolerances: Optional[Sequence[str]],
        started: float,
    ) -> Optional[SearchResult]:
        try:
            cached = await self.search_cache.get(lat, lon, query)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("search_cache_read_failed", error=str(e))
            return None
        if cached is None:
            return None

        products = [p for p in (ScrapedProduct.from_dict(item) for item in cached.products) if p is not None]

        # Rules may have changed since the entry was written
        content = ContentFilter(self.rules)
        allowed = [p for p in products if content.is_allowed(p)]
        kept, removed_intolerance = apply_intolerances(allowed, intolerances, self.rules)

        return SearchResult(
            products=kept,
            stores_searched=cached.stores_searched,
            cache_hit=True,
            search_latency_ms=self._elapsed_ms(started),
            filtered_out_count=(len(products) - len(allowed)) + removed_intolerance,
        )

    async def _scrape_stores(
        self,
        stores: List[NearbyStore],
        query: str,
        sources_by_store: Dict[Any, List[StoreSource]],
    ) -> List[ScrapedProduct]:
        """Scrape stores in batches of ``concurrency`` and persist each batch."""
        collected: List[ScrapedProduct] = []

        for start in range(0, len(stores), self.concurrency):
            batch = stores[start:start + self.concurrency]
            results = await asyncio.gather(
                *(self.scrape_store(store, query, sources_by_store.get(store.id, [])) for store in batch),
                return_exceptions=True,
            )

            completed: List[StoreScrape] = []
            for store, result in zip(batch, results):
                if isinstance(result, BaseException):
                    self.logger.error("store_scrape_failed", store_id=str(store.id), store=store.name, error=str(result))
                    continue
                completed.append(result)
                collected.extend(result.products)

            await self._persist_batch(completed, query)

        collected.sort(key=lambda p: (p.distance_meters if p.distance_meters is not None else 0, p.price_current))
        return collected

    async def scrape_store(
        self,
        store: NearbyStore,
        query: str,
        sources: Sequence[StoreSource] = (),
    ) -> StoreScrape:
        """Run the store's brand adapter and then each active source.

        Every adapter failure is contained; the store simply contributes
        fewer products.
        """
        scrape = StoreScrape(store=store)
        context = ScrapeContext(
            store_id=str(store.id) if store.id else None,
            store_name=store.name,
            store_brand=store.brand,
            store_website=store.website_url,
        )

        brand_adapter = self.adapter_factory.create_brand_adapter(store.brand)
        if brand_adapter is not None:
            scrape.products.extend(await brand_adapter.safe_scrape(query, context))

        for source in sources:
            products, outcome = await self._scrape_source(source, store, query, context)
            scrape.products.extend(products)
            scrape.outcomes.append(outcome)

        # Brand and website sources often list the same item
        seen = set()
        unique: List[ScrapedProduct] = []
        for product in scrape.products:
            key = (product.product_name.strip().lower(), product.price_current)
            if key in seen:
                continue
            seen.add(key)
            unique.append(product)
        scrape.products = unique

        for product in scrape.products:
            product.store_id = context.store_id
            product.store_name = store.name
            product.store_brand = store.brand
            product.distance_meters = store.distance
            product.store_latitude = store.latitude
            product.store_longitude = store.longitude

        return scrape

    async def _scrape_source(
        self,
        source: StoreSource,
        store: NearbyStore,
        query: str,
        context: ScrapeContext,
    ):
        if source.source_type == "brand":
            if source.source_identifier == store.brand:
                # Already covered by the store's own brand adapter
                return [], SourceOutcome(source.id, "skipped")
            adapter = self.adapter_factory.create_brand_adapter(source.source_identifier)
        else:
            adapter = self.adapter_factory.create_source_adapter(source.source_type)

        if adapter is None:
            return [], SourceOutcome(source.id, "skipped", f"no adapter for {source.source_type}")

        source_context = ScrapeContext(
            store_id=context.store_id,
            store_name=context.store_name,
            store_brand=context.store_brand,
            store_website=context.store_website,
            source_identifier=source.source_identifier,
            source_config=dict(source.config or {}),
        )
        try:
            products = await adapter.scrape(query, source_context)
        except Exception as e:
            self.logger.warning(
                "source_scrape_failed",
                source_id=str(source.id),
                source_type=source.source_type,
                error=str(e),
            )
            return [], SourceOutcome(source.id, "failed", str(e))
        return products, SourceOutcome(source.id, "completed")

    async def _persist_batch(self, scrapes: List[StoreScrape], query: str) -> None:
        try:
            for scrape in scrapes:
                if scrape.store.id and scrape.products:
                    await self.product_service.save_products(
                        scrape.store.id, scrape.products, search_query=query, commit=False
                    )
                for outcome in scrape.outcomes:
                    await self.source_registry.record_source_outcome(
                        outcome.source_id, outcome.status, outcome.error, commit=False
                    )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("batch_persist_failed", error=str(e), stores=len(scrapes))
