"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; keep tests off real services.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GROQ_API_KEY", "")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nutriscout.models import Base, Store
from nutriscout.scrapers.base import BaseBrandAdapter, BaseSourceAdapter, ScrapeContext, ScrapedProduct
from nutriscout.scrapers.factory import AdapterFactory
from nutriscout.services.discovery import NearbyStore


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Create an in-memory SQLite database for testing."""
    async with session_factory() as session:
        yield session


async def create_store(
    db: AsyncSession,
    osm_id: str,
    name: str = "Supermercado",
    brand: Optional[str] = None,
    scraping_enabled: bool = True,
    latitude: float = -34.6037,
    longitude: float = -58.3816,
    website_url: Optional[str] = None,
    store_type: str = "supermarket",
) -> Store:
    store = Store(
        osm_id=osm_id,
        name=name,
        brand=brand,
        store_type=store_type,
        latitude=latitude,
        longitude=longitude,
        website_url=website_url,
        scraping_enabled=scraping_enabled,
    )
    db.add(store)
    await db.commit()
    await db.refresh(store)
    return store


def as_nearby(store: Store, distance: int) -> NearbyStore:
    return NearbyStore.from_model(store, distance)


@pytest_asyncio.fixture
async def coto_store(test_db: AsyncSession) -> Store:
    return await create_store(test_db, "node/1", name="Coto Almagro", brand="COTO")


@pytest_asyncio.fixture
async def jumbo_store(test_db: AsyncSession) -> Store:
    return await create_store(test_db, "node/2", name="Jumbo Palermo", brand="JUMBO")


def make_product(name: str, price: str = "1000", **kwargs) -> ScrapedProduct:
    return ScrapedProduct(product_name=name, price_current=Decimal(price), **kwargs)


class StaticBrandAdapter(BaseBrandAdapter):
    """Brand adapter returning a fixed product list per query."""

    key = "COTO"
    catalog: dict = {}
    calls: List[str] = []

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        type(self).calls.append(query)
        return [make_product(name, price) for name, price in self.catalog.get(query, [])]


class FailingBrandAdapter(BaseBrandAdapter):
    key = "JUMBO"

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        raise RuntimeError("render backend down")


class StaticSourceAdapter(BaseSourceAdapter):
    key = "website"
    source_type = "website"
    products: List[ScrapedProduct] = []

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        return list(self.products)


@pytest.fixture
def adapter_factory():
    """Factory with fake collaborators and test adapters registered."""
    StaticBrandAdapter.catalog = {}
    StaticBrandAdapter.calls = []
    StaticSourceAdapter.products = []

    factory = AdapterFactory(
        render_client=AsyncMock(),
        html_parser=MagicMock(),
        http_client=MagicMock(),
    )
    factory.register_brand_adapter("COTO", StaticBrandAdapter)
    factory.register_brand_adapter("JUMBO", FailingBrandAdapter)
    factory.register_source_adapter("website", StaticSourceAdapter)
    return factory
