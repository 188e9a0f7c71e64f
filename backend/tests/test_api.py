"""HTTP tests for the v1 API with dependencies overridden."""

import uuid
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from jsonschema import validate

from nutriscout.dependencies import (
    get_db,
    get_discovery_service,
    get_factory,
    get_limiter,
    get_scraping_worker,
    get_search_orchestrator,
    get_spot_ranker,
)
from nutriscout.main import app
from nutriscout.schemas import ProductSearchResponse, WorkerRunResponse
from nutriscout.services.orchestrator import ProductSearchOrchestrator
from nutriscout.services.product_filters import FilterRules
from nutriscout.services.product_service import ProductService
from nutriscout.services.rate_limit import InMemoryRateLimiter
from nutriscout.services.scraping_worker import ScrapingWorker
from nutriscout.services.spot_ranker import SpotRanker

from conftest import StaticBrandAdapter, as_nearby, create_store, make_product

LAT, LON = -34.6037, -58.3816
CRON_SECRET = "s3cret"


@pytest.fixture
def discovery():
    return AsyncMock()


@pytest.fixture
def limiter():
    return InMemoryRateLimiter(limit=50)


@pytest_asyncio.fixture
async def client(test_db, adapter_factory, discovery, limiter, monkeypatch):
    """API client bound to the test database and fake collaborators."""
    monkeypatch.setattr("nutriscout.dependencies.settings.CRON_SECRET", CRON_SECRET)
    monkeypatch.setattr("nutriscout.services.spot_ranker.get_groq_client", lambda: None)
    rules = FilterRules.load()

    async def override_db():
        yield test_db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_factory] = lambda: adapter_factory
    app.dependency_overrides[get_limiter] = lambda: limiter
    app.dependency_overrides[get_discovery_service] = lambda: discovery
    app.dependency_overrides[get_search_orchestrator] = lambda: ProductSearchOrchestrator(
        test_db, adapter_factory=adapter_factory, discovery=discovery, rules=rules
    )
    app.dependency_overrides[get_scraping_worker] = lambda: ScrapingWorker(
        test_db, adapter_factory=adapter_factory, backoff_seconds=0
    )
    app.dependency_overrides[get_spot_ranker] = lambda: SpotRanker()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth() -> dict:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


class TestHealthApi:
    async def test_health(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["services"] == {"database": "ok", "redis": "ok"}

    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["health"] == "/api/v1/health"


class TestProductSearchApi:
    """Tests for /api/v1/products/search."""

    async def test_post_search_matches_schema(self, client, discovery, coto_store):
        StaticBrandAdapter.catalog = {"yogur": [("Yogur natural", "1800"), ("Shampoo", "500")]}
        discovery.find_nearby_stores.return_value = [as_nearby(coto_store, 250)]

        response = await client.post(
            "/api/v1/products/search",
            json={"lat": LAT, "lon": LON, "query": " yogur ", "max_stores": 3},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        validate(instance=body["data"], schema=ProductSearchResponse.model_json_schema())
        data = body["data"]
        assert data["cache_hit"] is False
        assert data["stores_searched"] == 1
        assert [p["product_name"] for p in data["products"]] == ["Yogur natural"]
        assert data["products"][0]["store_id"] == str(coto_store.id)
        assert data["products"][0]["distance_meters"] == 250

    async def test_get_search_is_cache_only(self, client, discovery, coto_store):
        miss = await client.get("/api/v1/products/search", params={"lat": LAT, "lon": LON, "query": "yogur"})

        assert miss.status_code == 200
        assert miss.json()["data"]["products"] == []
        discovery.find_nearby_stores.assert_not_called()

        StaticBrandAdapter.catalog = {"yogur": [("Yogur natural", "1800"), ("Yogur entero", "1500")]}
        discovery.find_nearby_stores.return_value = [as_nearby(coto_store, 250)]
        await client.post("/api/v1/products/search", json={"lat": LAT, "lon": LON, "query": "yogur"})

        hit = await client.get(
            "/api/v1/products/search",
            params=[("lat", LAT), ("lon", LON), ("query", "yogur"), ("intolerances", "lactosa")],
        )
        data = hit.json()["data"]
        assert data["cache_hit"] is True
        assert data["products"] == []
        assert data["filtered_out_count"] == 2

    @pytest.mark.parametrize(
        "body",
        [
            {"lat": LAT, "lon": LON, "query": " a "},
            {"lat": 91, "lon": LON, "query": "leche"},
            {"lat": LAT, "lon": LON, "query": "leche", "max_stores": 11},
            {"lat": LAT, "lon": LON, "query": "leche", "intolerances": ["x"] * 11},
        ],
    )
    async def test_invalid_body(self, client, body):
        response = await client.post("/api/v1/products/search", json=body)
        assert response.status_code == 422

    async def test_rate_limited(self, client, limiter):
        limiter.limit = 1
        params = {"lat": LAT, "lon": LON, "query": "arroz"}

        first = await client.get("/api/v1/products/search", params=params, headers={"X-Forwarded-For": "9.9.9.9"})
        second = await client.get("/api/v1/products/search", params=params, headers={"X-Forwarded-For": "9.9.9.9, 10.0.0.1"})
        other = await client.get("/api/v1/products/search", params=params, headers={"X-Forwarded-For": "8.8.8.8"})

        assert first.status_code == 200
        assert second.status_code == 429
        assert 1 <= int(second.headers["Retry-After"]) <= 60
        assert other.status_code == 200


class TestStoresApi:
    async def test_nearby(self, client, discovery, coto_store):
        discovery.find_nearby_stores.return_value = [as_nearby(coto_store, 120)]

        response = await client.get("/api/v1/stores/nearby", params={"lat": LAT, "lon": LON, "radius": 500})

        assert response.status_code == 200
        stores = response.json()["data"]
        assert stores[0]["osm_id"] == "node/1"
        assert stores[0]["distance"] == 120
        discovery.find_nearby_stores.assert_awaited_once_with(LAT, LON, 500)

    async def test_store_products(self, client, test_db, coto_store):
        await ProductService(test_db).save_products(coto_store.id, [make_product("Avena", "2100")], search_query="avena")

        response = await client.get(f"/api/v1/stores/{coto_store.id}/products")

        assert response.status_code == 200
        assert [p["product_name"] for p in response.json()["data"]] == ["Avena"]

    async def test_unknown_store_products(self, client):
        response = await client.get(f"/api/v1/stores/{uuid.uuid4()}/products")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"


class TestScrapingApi:
    """Tests for the cron-protected scraping endpoints."""

    async def test_requires_configured_secret(self, client, monkeypatch):
        monkeypatch.setattr("nutriscout.dependencies.settings.CRON_SECRET", "")

        response = await client.post("/api/v1/scraping/worker", headers=auth())

        assert response.status_code == 503

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}])
    async def test_rejects_bad_token(self, client, headers):
        response = await client.post("/api/v1/scraping/worker", headers=headers)
        assert response.status_code == 401

    async def test_trigger_run_and_status(self, client, coto_store):
        StaticBrandAdapter.catalog = {"leche": [("Leche entera", "1200")]}

        trigger = await client.post(
            "/api/v1/scraping/trigger",
            json={"store_id": str(coto_store.id), "products": ["leche"]},
            headers=auth(),
        )
        assert trigger.status_code == 202
        job_id = trigger.json()["data"]["job_id"]
        assert trigger.json()["data"]["status"] == "pending"

        run = await client.post("/api/v1/scraping/worker", params={"max_jobs": 5}, headers=auth())
        assert run.status_code == 200
        validate(instance=run.json()["data"], schema=WorkerRunResponse.model_json_schema())
        assert run.json()["data"]["processed"] == 1
        assert run.json()["data"]["jobs"][0]["products_found"] == 1

        status = await client.get(f"/api/v1/scraping/jobs/{job_id}", headers=auth())
        assert status.status_code == 200
        assert status.json()["data"]["status"] == "completed"

    async def test_trigger_rejections(self, client, test_db):
        disabled = await create_store(test_db, "node/7", name="Coto", brand="COTO", scraping_enabled=False)
        unsupported = await create_store(test_db, "node/8", name="Día", brand="DIA")

        missing = await client.post(
            "/api/v1/scraping/trigger", json={"store_id": str(uuid.uuid4()), "products": ["leche"]}, headers=auth()
        )
        forbidden = await client.post(
            "/api/v1/scraping/trigger", json={"store_id": str(disabled.id), "products": ["leche"]}, headers=auth()
        )
        no_adapter = await client.post(
            "/api/v1/scraping/trigger", json={"store_id": str(unsupported.id), "products": ["leche"]}, headers=auth()
        )
        empty = await client.post(
            "/api/v1/scraping/trigger", json={"store_id": str(disabled.id), "products": []}, headers=auth()
        )

        assert missing.status_code == 404
        assert forbidden.status_code == 403
        assert no_adapter.status_code == 400
        assert empty.status_code == 422

    async def test_unknown_job(self, client):
        response = await client.get(f"/api/v1/scraping/jobs/{uuid.uuid4()}", headers=auth())
        assert response.status_code == 404


class TestNeighborhoodApi:
    async def test_spots_use_fallback_ranking(self, client, discovery, test_db):
        dietetica = await create_store(test_db, "node/3", name="Dietética Natural", store_type="health_food")
        bakery = await create_store(test_db, "node/4", name="Panadería Don Pepe", store_type="bakery")
        discovery.find_nearby_stores.return_value = [as_nearby(dietetica, 300), as_nearby(bakery, 100)]

        response = await client.post("/api/v1/neighborhood/spots", json={"lat": LAT, "lon": LON})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_candidates"] == 2
        assert [s["id"] for s in data["spots"]] == ["node/3"]
        discovery.find_nearby_stores.assert_awaited_once_with(LAT, LON, 1800)

    async def test_spots_validation(self, client):
        response = await client.post("/api/v1/neighborhood/spots", json={"lat": LAT, "lon": LON, "radius": 50})
        assert response.status_code == 422
