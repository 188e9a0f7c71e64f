"""Coto Digital adapter.

Coto's search page is rendered client-side, so the page goes through the
headless render backend and the generic HTML parser.
"""

from nutriscout.scrapers.base import BrandRenderAdapter, FetchConfig


class CotoAdapter(BrandRenderAdapter):
    """Supermercados Coto (cotodigital3.com.ar)."""

    key = "COTO"
    base_url = "https://www.cotodigital3.com.ar"

    def fetch_config(self, query: str) -> FetchConfig:
        return FetchConfig(
            url_template=f"{self.base_url}/sitios/cdigi/buscar?q={{query}}",
            wait_selector=".product-item, .producto, table.products",
            scroll=True,
            scroll_count=2,
        )
