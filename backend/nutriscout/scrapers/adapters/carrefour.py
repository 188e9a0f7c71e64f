"""Carrefour Argentina adapter.

Carrefour runs a VTEX storefront whose public catalog search endpoint
returns structured JSON, so no rendering or LLM parsing is needed.
Endpoint: GET /api/catalog_system/pub/products/search/{query}
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from nutriscout.config import settings
from nutriscout.scrapers.base import BaseBrandAdapter, ScrapedProduct, ScrapeContext
from nutriscout.scrapers.utils.retry import http_retry


class CarrefourAdapter(BaseBrandAdapter):
    """Carrefour (carrefour.com.ar) via the VTEX catalog API."""

    key = "CARREFOUR"
    base_url = "https://www.carrefour.com.ar"
    SEARCH_PATH = "/api/catalog_system/pub/products/search/"

    @http_retry
    async def _fetch_products(self, query: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}{self.SEARCH_PATH}{quote(query.strip())}"
        await self._throttle(url)

        client = self.http_client
        if client is None:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as owned:
                response = await owned.get(url, headers={"User-Agent": settings.SCRAPER_USER_AGENT})
        else:
            response = await client.get(url)

        response.raise_for_status()
        data = response.json()
        return data if isinstance(data, list) else []

    @staticmethod
    def _pick_offer(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Default seller's offer if available, else the first seller's."""
        sellers = [s for s in item.get("sellers") or [] if isinstance(s, dict)]
        for seller in sellers:
            offer = seller.get("commertialOffer") or {}
            if seller.get("sellerDefault") and offer.get("IsAvailable"):
                return offer
        if sellers:
            return sellers[0].get("commertialOffer") or None
        return None

    def _product_url(self, product: Dict[str, Any]) -> str:
        link = product.get("link")
        if link and link.startswith("http"):
            return link
        if link:
            return f"{self.base_url}{link}"
        return f"{self.base_url}/{product.get('linkText') or ''}/p"

    def normalize(self, product: Dict[str, Any]) -> List[ScrapedProduct]:
        """Turn one VTEX product (possibly several SKUs) into products."""
        results = []
        for item in product.get("items") or []:
            if not isinstance(item, dict):
                continue
            offer = self._pick_offer(item)
            if not offer:
                continue

            image_url = next(
                (img.get("imageUrl") for img in item.get("images") or [] if isinstance(img, dict) and img.get("imageUrl")),
                None,
            )
            list_price = offer.get("ListPrice")

            scraped = ScrapedProduct.from_raw(
                {
                    "product_name": item.get("name") or product.get("productName"),
                    "brand": product.get("brand"),
                    "price_current": offer.get("Price"),
                    "price_regular": list_price if list_price and list_price > 0 else None,
                    "unit": item.get("measurementUnit"),
                    "quantity": item.get("unitMultiplier"),
                    "image_url": image_url,
                    "product_url": self._product_url(product),
                },
                base_url=self.base_url,
            )
            if scraped is not None:
                results.append(scraped)
        return results

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        api_products = await self._fetch_products(query)
        products = []
        for api_product in api_products:
            if isinstance(api_product, dict):
                products.extend(self.normalize(api_product))
        return products
