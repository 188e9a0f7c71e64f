"""Cencosud supermarket adapters (Jumbo, Vea, Disco).

The three chains share one VTEX storefront theme, so a single adapter class
parameterised by domain covers all of them.
"""

from nutriscout.scrapers.base import BrandRenderAdapter, FetchConfig


class CencosudAdapter(BrandRenderAdapter):
    """Shared search-page configuration for Cencosud storefronts."""

    domain: str = ""

    @property
    def base_url(self) -> str:
        return f"https://www.{self.domain}"

    def fetch_config(self, query: str) -> FetchConfig:
        return FetchConfig(
            url_template=f"{self.base_url}/buscar?q={{query}}",
            wait_selector=".product-card, .shelf-item, .vtex-search-result-3-x-galleryItem",
            scroll=True,
            scroll_count=3,
            extra_wait_ms=1000,
        )


class JumboAdapter(CencosudAdapter):
    key = "JUMBO"
    domain = "jumbo.com.ar"


class VeaAdapter(CencosudAdapter):
    key = "VEA"
    domain = "vea.com.ar"


class DiscoAdapter(CencosudAdapter):
    key = "DISCO"
    domain = "disco.com.ar"
