"""Generic store website source adapter.

Fetches the store's own page with a plain HTTP GET and hands the HTML to
the LLM parser. Used for independent shops without a brand adapter.
"""

from typing import List

import httpx

from nutriscout.config import settings
from nutriscout.scrapers.base import BaseSourceAdapter, ScrapedProduct, ScrapeContext
from nutriscout.scrapers.utils.retry import http_retry

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class WebsiteSourceAdapter(BaseSourceAdapter):
    """Scrapes a store website configured as a source."""

    key = "website"
    source_type = "website"

    @http_retry
    async def _fetch_html(self, url: str) -> str:
        await self._throttle(url)
        headers = {"User-Agent": settings.SCRAPER_USER_AGENT, "Accept": ACCEPT_HTML}

        if self.http_client is None:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True) as client:
                response = await client.get(url, headers=headers)
        else:
            response = await self.http_client.get(url, headers=headers)

        response.raise_for_status()
        return response.text

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        url = context.source_identifier or context.store_website
        if not url:
            self.logger.warning("website_url_missing", store_id=context.store_id)
            return []
        if self.html_parser is None:
            raise RuntimeError("website adapter requires html_parser")

        html = await self._fetch_html(url)
        parse_context = ScrapeContext(
            store_id=context.store_id,
            store_name=context.store_name,
            store_brand=context.store_brand,
            store_website=url,
        )
        return await self.html_parser.parse(html, parse_context)
