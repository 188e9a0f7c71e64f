"""Tests for the nearby product search orchestrator."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from nutriscout.models import ScrapedProductRecord, StoreSource
from nutriscout.services.orchestrator import ProductSearchOrchestrator
from nutriscout.services.product_filters import FilterRules
from nutriscout.services.source_registry import SourceRegistryService

from conftest import StaticBrandAdapter, StaticSourceAdapter, as_nearby, create_store, make_product

LAT, LON = -34.6037, -58.3816


@pytest.fixture
def discovery():
    return AsyncMock()


@pytest.fixture
def orchestrator(test_db, adapter_factory, discovery):
    return ProductSearchOrchestrator(
        test_db,
        adapter_factory=adapter_factory,
        discovery=discovery,
        rules=FilterRules.load(),
        concurrency=2,
        discovery_radius=2000,
    )


class TestSearchNearbyProducts:
    """Tests for ProductSearchOrchestrator.search_nearby_products."""

    async def test_search_scrapes_filters_and_caches(self, test_db, orchestrator, discovery, coto_store, jumbo_store):
        StaticBrandAdapter.catalog = {
            "leche": [("Leche entera", "1200"), ("Shampoo de leche", "900"), ("Leche entera", "1200")],
        }
        discovery.find_nearby_stores.return_value = [as_nearby(jumbo_store, 150), as_nearby(coto_store, 300)]

        result = await orchestrator.search_nearby_products(LAT, LON, "  leche ")

        assert result.cache_hit is False
        assert result.stores_searched == 2
        assert result.filtered_out_count == 1
        assert [p.product_name for p in result.products] == ["Leche entera"]
        product = result.products[0]
        assert product.store_id == str(coto_store.id)
        assert product.store_name == "Coto Almagro"
        assert product.distance_meters == 300
        assert product.price_current == Decimal("1200")

        rows = (await test_db.execute(select(ScrapedProductRecord))).scalars().all()
        assert sorted(r.product_name for r in rows) == ["Leche entera", "Shampoo de leche"]
        assert all(r.search_query == "leche" for r in rows)

        cached = await orchestrator.search_nearby_products(LAT, LON, "LECHE")

        assert cached.cache_hit is True
        assert cached.stores_searched == 2
        assert [p.product_name for p in cached.products] == ["Leche entera"]
        assert cached.products[0].store_id == str(coto_store.id)
        assert discovery.find_nearby_stores.await_count == 1

    async def test_force_refresh_skips_cache(self, orchestrator, discovery, coto_store):
        StaticBrandAdapter.catalog = {"arroz": [("Arroz integral", "1500")]}
        discovery.find_nearby_stores.return_value = [as_nearby(coto_store, 100)]

        await orchestrator.search_nearby_products(LAT, LON, "arroz")
        result = await orchestrator.search_nearby_products(LAT, LON, "arroz", force_refresh=True)

        assert result.cache_hit is False
        assert StaticBrandAdapter.calls == ["arroz", "arroz"]

    async def test_max_stores_caps_scraped_stores(self, test_db, orchestrator, discovery, coto_store):
        other = await create_store(test_db, "node/3", name="Coto Caballito", brand="COTO")
        StaticBrandAdapter.catalog = {"arroz": [("Arroz integral", "1500")]}
        discovery.find_nearby_stores.return_value = [as_nearby(coto_store, 100), as_nearby(other, 900)]

        result = await orchestrator.search_nearby_products(LAT, LON, "arroz", max_stores=1)

        assert result.stores_searched == 1
        assert StaticBrandAdapter.calls == ["arroz"]
        assert {p.store_id for p in result.products} == {str(coto_store.id)}

    async def test_disabled_stores_are_not_scraped(self, test_db, orchestrator, discovery):
        disabled = await create_store(test_db, "node/4", name="Coto cerrado", brand="COTO", scraping_enabled=False)
        discovery.find_nearby_stores.return_value = [as_nearby(disabled, 100)]

        result = await orchestrator.search_nearby_products(LAT, LON, "arroz")

        assert result.stores_searched == 0
        assert result.products == []
        assert StaticBrandAdapter.calls == []

    async def test_cache_only_miss_returns_empty(self, orchestrator, discovery):
        result = await orchestrator.search_nearby_products(LAT, LON, "arroz", max_stores=0)

        assert result.products == []
        assert result.stores_searched == 0
        assert result.cache_hit is False
        discovery.find_nearby_stores.assert_not_called()

    async def test_no_stores_found(self, orchestrator, discovery):
        discovery.find_nearby_stores.return_value = []

        result = await orchestrator.search_nearby_products(LAT, LON, "arroz")

        assert result.products == []
        assert result.stores_searched == 0

    async def test_results_sorted_by_distance_then_price(self, test_db, orchestrator, discovery, coto_store):
        near = await create_store(test_db, "node/3", name="Coto Cerca", brand="COTO")
        StaticBrandAdapter.catalog = {"arroz": [("Arroz largo", "1800"), ("Arroz integral", "1500")]}
        discovery.find_nearby_stores.return_value = [as_nearby(near, 50), as_nearby(coto_store, 400)]

        result = await orchestrator.search_nearby_products(LAT, LON, "arroz")

        assert [(p.distance_meters, p.price_current) for p in result.products] == [
            (50, Decimal("1500")),
            (50, Decimal("1800")),
            (400, Decimal("1500")),
            (400, Decimal("1800")),
        ]

    async def test_intolerances_apply_after_cache(self, orchestrator, discovery, coto_store):
        StaticBrandAdapter.catalog = {"leche": [("Leche entera", "1200"), ("Leche deslactosada", "1400")]}
        discovery.find_nearby_stores.return_value = [as_nearby(coto_store, 100)]

        filtered = await orchestrator.search_nearby_products(LAT, LON, "leche", intolerances=["lactosa"])
        unfiltered = await orchestrator.search_nearby_products(LAT, LON, "leche")

        assert [p.product_name for p in filtered.products] == ["Leche deslactosada"]
        assert filtered.filtered_out_count == 1
        assert unfiltered.cache_hit is True
        assert len(unfiltered.products) == 2


class TestScrapeStoreSources:
    """Tests for per-store source handling."""

    async def test_website_source_created_and_recorded(self, test_db, orchestrator, discovery):
        shop = await create_store(
            test_db, "way/20", name="Dietética Sol", store_type="health_food",
            website_url="https://dieteticasol.com.ar",
        )
        StaticSourceAdapter.products = [make_product("Miel orgánica", "4200")]
        discovery.find_nearby_stores.return_value = [as_nearby(shop, 200)]

        result = await orchestrator.search_nearby_products(LAT, LON, "miel")

        assert [p.product_name for p in result.products] == ["Miel orgánica"]
        source = (await test_db.execute(select(StoreSource))).scalar_one()
        await test_db.refresh(source)
        assert source.source_type == "website"
        assert source.last_status == "completed"

    async def test_brand_source_for_own_brand_is_skipped(self, test_db, orchestrator, coto_store):
        registry = SourceRegistryService(test_db)
        own_brand = await registry.add_source(coto_store.id, "brand", "COTO")
        unknown = await registry.add_source(coto_store.id, "brand", "DIA")
        StaticBrandAdapter.catalog = {"pan": [("Pan integral", "900")]}

        scrape = await orchestrator.scrape_store(as_nearby(coto_store, 100), "pan", [own_brand, unknown])

        assert [p.product_name for p in scrape.products] == ["Pan integral"]
        assert [(o.source_id, o.status) for o in scrape.outcomes] == [
            (own_brand.id, "skipped"),
            (unknown.id, "skipped"),
        ]
        assert scrape.outcomes[1].error == "no adapter for brand"

    async def test_failing_brand_adapter_is_contained(self, orchestrator, jumbo_store):
        scrape = await orchestrator.scrape_store(as_nearby(jumbo_store, 100), "arroz")
        assert scrape.products == []

    async def test_failing_source_records_failure(self, test_db, orchestrator, coto_store, monkeypatch):
        registry = SourceRegistryService(test_db)
        source = await registry.add_source(coto_store.id, "website", "https://coto.example")

        async def boom(self, query, context):
            raise RuntimeError("timeout")

        monkeypatch.setattr(StaticSourceAdapter, "scrape", boom)

        scrape = await orchestrator.scrape_store(as_nearby(coto_store, 100), "pan", [source])

        assert scrape.outcomes[0].status == "failed"
        assert scrape.outcomes[0].error == "timeout"


class TestSearchInvariants:
    async def test_leche_search_respects_store_cap_and_relevance(self, test_db, orchestrator, discovery, coto_store):
        second = await create_store(test_db, "node/3", name="Coto Caballito", brand="COTO")
        third = await create_store(test_db, "node/4", name="Coto Flores", brand="COTO")
        StaticBrandAdapter.catalog = {
            "leche": [("Leche entera", "1200"), ("Dulce de leche", "2500"), ("Galletitas de agua", "800")],
        }
        discovery.find_nearby_stores.return_value = [
            as_nearby(coto_store, 100), as_nearby(second, 200), as_nearby(third, 300),
        ]

        result = await orchestrator.search_nearby_products(-34.6037, -58.3816, "leche", max_stores=2)

        assert result.stores_searched <= 2
        assert result.products
        assert all("leche" in p.product_name.lower() for p in result.products)
        assert all(p.price_current > 0 for p in result.products)
