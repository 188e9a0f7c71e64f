"""Tests for brand/source adapters and the adapter factory."""

from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from tenacity import wait_none

from nutriscout.core.exceptions import AdapterRegistryError, RenderError
from nutriscout.scrapers.adapters import (
    CarrefourAdapter,
    CotoAdapter,
    InstagramSourceAdapter,
    JumboAdapter,
    WebsiteSourceAdapter,
)
from nutriscout.scrapers.adapters.instagram import (
    build_product_name,
    extract_claims,
    extract_price,
    matches_query,
)
from nutriscout.scrapers.base import ScrapeContext
from nutriscout.scrapers.factory import AdapterFactory
from nutriscout.scrapers.register_adapters import register_all_adapters

from conftest import make_product


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


VTEX_RESPONSE = [
    {
        "productName": "Leche Entera La Serenísima 1 L",
        "brand": "La Serenísima",
        "link": "https://www.carrefour.com.ar/leche-entera/p",
        "items": [
            {
                "name": "Leche Entera La Serenísima 1 L",
                "measurementUnit": "lt",
                "unitMultiplier": 1,
                "images": [{"imageUrl": "https://carrefourar.vteximg.com.br/leche.jpg"}],
                "sellers": [
                    {"sellerDefault": False, "commertialOffer": {"Price": 999, "ListPrice": 999, "IsAvailable": True}},
                    {"sellerDefault": True, "commertialOffer": {"Price": 1250.5, "ListPrice": 1400, "IsAvailable": True}},
                ],
            },
            {
                "name": "Sin precio",
                "sellers": [{"sellerDefault": True, "commertialOffer": {"Price": 0, "IsAvailable": False}}],
            },
        ],
    }
]


class TestCarrefourAdapter:
    """Tests for the VTEX catalog adapter."""

    async def test_scrape_maps_vtex_products(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=VTEX_RESPONSE)

        adapter = CarrefourAdapter()
        adapter.http_client = mock_client(handler)

        products = await adapter.scrape("leche entera", ScrapeContext(store_name="Carrefour"))

        assert requests[0].url.raw_path == b"/api/catalog_system/pub/products/search/leche%20entera"
        assert len(products) == 1
        product = products[0]
        assert product.price_current == Decimal("1250.50")
        assert product.price_regular == Decimal("1400.00")
        assert product.brand == "La Serenísima"
        assert product.unit == "lt"
        assert product.image_url == "https://carrefourar.vteximg.com.br/leche.jpg"
        assert product.product_url == "https://www.carrefour.com.ar/leche-entera/p"

    async def test_non_list_payload_yields_nothing(self):
        adapter = CarrefourAdapter()
        adapter.http_client = mock_client(lambda request: httpx.Response(200, json={"error": "x"}))

        assert await adapter.scrape("arroz", ScrapeContext()) == []

    async def test_safe_scrape_contains_client_errors(self):
        adapter = CarrefourAdapter()
        adapter.http_client = mock_client(lambda request: httpx.Response(404))

        assert await adapter.safe_scrape("arroz", ScrapeContext()) == []

    def test_relative_link_uses_base_url(self):
        adapter = CarrefourAdapter()
        assert adapter._product_url({"link": "/arroz/p"}) == "https://www.carrefour.com.ar/arroz/p"
        assert adapter._product_url({"linkText": "arroz"}) == "https://www.carrefour.com.ar/arroz/p"


class TestRenderAdapters:
    """Tests for brand adapters that render a search page."""

    async def test_coto_renders_and_parses(self):
        adapter = CotoAdapter()
        adapter.render_client = AsyncMock()
        adapter.render_client.render.return_value = "<html>coto</html>"
        adapter.html_parser = AsyncMock()
        adapter.html_parser.parse.return_value = [make_product("Pollo entero", "3500")]

        products = await adapter.scrape("pollo", ScrapeContext(store_id="s1", store_name="Coto Centro"))

        assert [p.product_name for p in products] == ["Pollo entero"]
        url = adapter.render_client.render.call_args.args[0]
        assert url == "https://www.cotodigital3.com.ar/sitios/cdigi/buscar?q=pollo"
        assert adapter.render_client.render.call_args.kwargs["scroll_count"] == 2
        parse_context = adapter.html_parser.parse.call_args.args[1]
        assert parse_context.store_website == url
        assert parse_context.store_brand == "COTO"

    def test_cencosud_domains(self):
        config = JumboAdapter().fetch_config("arroz")
        assert config.build_url("arroz") == "https://www.jumbo.com.ar/buscar?q=arroz"

    async def test_render_failure_is_contained(self):
        adapter = JumboAdapter()
        adapter.render_client = AsyncMock()
        adapter.render_client.render.side_effect = RenderError("https://www.jumbo.com.ar", "502")
        adapter.html_parser = AsyncMock()

        assert await adapter.safe_scrape("arroz", ScrapeContext()) == []
        adapter.html_parser.parse.assert_not_called()


class TestWebsiteSourceAdapter:
    async def test_fetches_source_url_and_parses(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text="<html><body>Almacén</body></html>")

        adapter = WebsiteSourceAdapter()
        adapter.http_client = mock_client(handler)
        adapter.html_parser = AsyncMock()
        adapter.html_parser.parse.return_value = [make_product("Miel orgánica", "4200")]

        context = ScrapeContext(store_name="Almacén Verde", source_identifier="https://almacenverde.com.ar/tienda")
        products = await adapter.scrape("miel", context)

        assert seen == ["https://almacenverde.com.ar/tienda"]
        assert products[0].product_name == "Miel orgánica"
        assert adapter.html_parser.parse.call_args.args[1].store_website == "https://almacenverde.com.ar/tienda"

    async def test_without_url_returns_empty(self):
        adapter = WebsiteSourceAdapter()
        adapter.html_parser = AsyncMock()

        assert await adapter.scrape("miel", ScrapeContext()) == []

    async def test_transient_status_is_retried(self, monkeypatch):
        monkeypatch.setattr(WebsiteSourceAdapter._fetch_html.retry, "wait", wait_none())
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, text="<html>Granola</html>")]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return responses[len(calls) - 1]

        adapter = WebsiteSourceAdapter()
        adapter.http_client = mock_client(handler)

        html = await adapter._fetch_html("https://almacenverde.com.ar/tienda")

        assert html == "<html>Granola</html>"
        assert len(calls) == 2

    async def test_client_error_is_not_retried(self, monkeypatch):
        monkeypatch.setattr(WebsiteSourceAdapter._fetch_html.retry, "wait", wait_none())
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(404, text="missing")

        adapter = WebsiteSourceAdapter()
        adapter.http_client = mock_client(handler)

        with pytest.raises(httpx.HTTPStatusError):
            await adapter._fetch_html("https://almacenverde.com.ar/tienda")
        assert len(calls) == 1


class TestInstagramHelpers:
    def test_extract_price_formats(self):
        assert extract_price("Promo yogur griego $ 2.500 hoy") == Decimal("2500.00")
        assert extract_price("Precio: 1.234,50 por kilo") == Decimal("1234.50")
        assert extract_price("Sin precio en el posteo") is None

    def test_extract_claims(self):
        claims = extract_claims("Galletitas SIN TACC y veganas, sin azúcar agregada")
        assert claims == ["Sin TACC", "Vegano", "Sin azúcar"]

    def test_matches_query_accent_insensitive(self):
        assert matches_query("Llegó el PAN de masa madre", "pan integral")
        assert not matches_query("Quesos artesanales", "pan")

    def test_build_product_name(self):
        assert build_product_name("Granola casera\n$ 3000", "Local") == "Granola casera"
        assert build_product_name("", "Local") == "Local"
        assert build_product_name("x" * 100, "Local").endswith("...")


class TestInstagramSourceAdapter:
    async def test_posts_with_query_and_price_become_products(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = request.url
            return httpx.Response(200, json={"data": [
                {"caption": "Yogur natural sin azúcar\n$ 1.800", "permalink": "https://instagram.com/p/1", "media_url": "https://cdn.ig/1.jpg"},
                {"caption": "Yogur bebible (consultar precio)"},
                {"caption": "Pan integral $ 900"},
                {"caption": None},
            ]})

        adapter = InstagramSourceAdapter()
        adapter.http_client = mock_client(handler)

        context = ScrapeContext(
            store_name="Dietética Sol",
            source_identifier="17841400000",
            source_config={"access_token": "tok", "limit": 500},
        )
        products = await adapter.scrape("yogur", context)

        assert captured["url"].path == "/17841400000/media"
        assert captured["url"].params["limit"] == "50"
        assert captured["url"].params["access_token"] == "tok"
        assert len(products) == 1
        assert products[0].product_name == "Yogur natural sin azúcar"
        assert products[0].price_current == Decimal("1800.00")
        assert products[0].nutritional_claims == ["Sin azúcar"]
        assert products[0].brand == "Dietética Sol"

    async def test_missing_credentials_returns_empty(self, monkeypatch):
        monkeypatch.setattr("nutriscout.scrapers.adapters.instagram.settings.INSTAGRAM_ACCESS_TOKEN", "")
        adapter = InstagramSourceAdapter()

        assert await adapter.scrape("yogur", ScrapeContext(source_identifier="123")) == []


class TestAdapterFactory:
    """Tests for the adapter registries."""

    def test_register_all_validates(self):
        factory = register_all_adapters(AdapterFactory())

        assert factory.get_registered_brands() == ["CARREFOUR", "COTO", "DISCO", "JUMBO", "VEA"]
        assert factory.get_registered_source_types() == ["instagram", "website"]

    def test_missing_adapter_fails_validation(self):
        factory = AdapterFactory()
        factory.register_brand_adapter("COTO", CotoAdapter)

        with pytest.raises(AdapterRegistryError, match="CARREFOUR"):
            factory.validate()

    def test_register_rejects_wrong_kind(self):
        factory = AdapterFactory()
        with pytest.raises(ValueError):
            factory.register_brand_adapter("COTO", WebsiteSourceAdapter)

    def test_create_injects_shared_services(self):
        render_client = AsyncMock()
        parser = AsyncMock()
        http_client = httpx.AsyncClient()
        factory = register_all_adapters(
            AdapterFactory(render_client=render_client, html_parser=parser, http_client=http_client)
        )

        coto = factory.create_brand_adapter("COTO")
        website = factory.create_source_adapter("website")

        assert coto.render_client is render_client
        assert coto.html_parser is parser
        assert coto.http_client is http_client
        assert website.html_parser is parser
        assert factory.create_brand_adapter("DIA") is None
        assert factory.create_brand_adapter(None) is None
        assert factory.create_source_adapter("tiktok") is None
