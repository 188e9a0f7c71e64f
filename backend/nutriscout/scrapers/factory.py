"""Factory holding the brand and source adapter registries.

Two explicit registries are kept: brand key -> brand adapter class and
source type -> source adapter class. Both are validated at startup so a
supported brand or source type without an adapter fails fast instead of
silently scraping nothing.
"""

from typing import Dict, Iterable, Optional, Type
import structlog

import httpx

from nutriscout.config import settings
from nutriscout.core.exceptions import AdapterRegistryError
from nutriscout.scrapers.base import BaseAdapter, BaseBrandAdapter, BaseSourceAdapter, BrandRenderAdapter
from nutriscout.scrapers.brands import SUPPORTED_BRANDS
from nutriscout.scrapers.utils import DomainRateLimiter

logger = structlog.get_logger(__name__)

# Source types that must have a source adapter. 'brand' sources resolve
# through the brand registry instead.
REQUIRED_SOURCE_TYPES = ("website", "instagram")


class AdapterFactory:
    """Creates adapter instances and injects shared services into them.

    Shared services (rate limiter, HTTP client, render client, HTML parser)
    are passed in explicitly in tests and resolved lazily from their
    process-wide getters otherwise.
    """

    def __init__(
        self,
        render_client=None,
        html_parser=None,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ):
        self.rate_limiter = rate_limiter or DomainRateLimiter()
        self._render_client = render_client
        self._html_parser = html_parser
        self._http_client = http_client
        self._owns_http_client = http_client is None

        self._brand_registry: Dict[str, Type[BaseBrandAdapter]] = {}
        self._source_registry: Dict[str, Type[BaseSourceAdapter]] = {}

    @property
    def render_client(self):
        if self._render_client is None:
            from nutriscout.scrapers.render_client import get_render_client

            self._render_client = get_render_client()
        return self._render_client

    @property
    def html_parser(self):
        if self._html_parser is None:
            from nutriscout.scrapers.html_parser import get_html_parser

            self._html_parser = get_html_parser()
        return self._html_parser

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                follow_redirects=True,
                headers={"User-Agent": settings.SCRAPER_USER_AGENT},
            )
        return self._http_client

    def register_brand_adapter(self, brand: str, adapter_class: Type[BaseBrandAdapter]) -> None:
        """Register an adapter class for a canonical brand key (e.g. "COTO")."""
        if not issubclass(adapter_class, BaseBrandAdapter):
            raise ValueError(f"Adapter class must inherit from BaseBrandAdapter: {adapter_class}")
        self._brand_registry[brand] = adapter_class
        logger.debug("brand_adapter_registered", brand=brand, adapter_class=adapter_class.__name__)

    def register_source_adapter(self, source_type: str, adapter_class: Type[BaseSourceAdapter]) -> None:
        """Register an adapter class for a source type (e.g. "website")."""
        if not issubclass(adapter_class, BaseSourceAdapter):
            raise ValueError(f"Adapter class must inherit from BaseSourceAdapter: {adapter_class}")
        self._source_registry[source_type] = adapter_class
        logger.debug("source_adapter_registered", source_type=source_type, adapter_class=adapter_class.__name__)

    def _inject(self, adapter: BaseAdapter) -> BaseAdapter:
        adapter.rate_limiter = self.rate_limiter
        adapter.http_client = self.http_client
        if isinstance(adapter, BrandRenderAdapter):
            adapter.render_client = self.render_client
            adapter.html_parser = self.html_parser
        elif isinstance(adapter, BaseSourceAdapter):
            adapter.html_parser = self.html_parser
        return adapter

    def create_brand_adapter(self, brand: Optional[str]) -> Optional[BaseBrandAdapter]:
        """Create a configured brand adapter, or None if the brand has none."""
        adapter_class = self._brand_registry.get(brand) if brand else None
        if not adapter_class:
            return None
        return self._inject(adapter_class())

    def create_source_adapter(self, source_type: str) -> Optional[BaseSourceAdapter]:
        """Create a configured source adapter, or None for unknown types."""
        adapter_class = self._source_registry.get(source_type)
        if not adapter_class:
            logger.warning("source_adapter_not_found", source_type=source_type)
            return None
        return self._inject(adapter_class())

    def has_brand_adapter(self, brand: Optional[str]) -> bool:
        return bool(brand) and brand in self._brand_registry

    def get_registered_brands(self) -> list[str]:
        return sorted(self._brand_registry)

    def get_registered_source_types(self) -> list[str]:
        return sorted(self._source_registry)

    def validate(
        self,
        required_brands: Iterable[str] = SUPPORTED_BRANDS,
        required_source_types: Iterable[str] = REQUIRED_SOURCE_TYPES,
    ) -> None:
        """Fail if a supported brand or source type has no adapter.

        Raises:
            AdapterRegistryError: listing every missing key
        """
        missing_brands = sorted(set(required_brands) - set(self._brand_registry))
        missing_sources = sorted(set(required_source_types) - set(self._source_registry))
        if missing_brands or missing_sources:
            raise AdapterRegistryError(
                f"Missing adapters: brands={missing_brands} source_types={missing_sources}"
            )
        logger.info(
            "adapter_registry_valid",
            brands=self.get_registered_brands(),
            source_types=self.get_registered_source_types(),
        )

    async def aclose(self) -> None:
        """Close the shared HTTP client if this factory created it, and the render backend."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
        if self._render_client is not None:
            await self._render_client.aclose()


# Global factory instance
adapter_factory = AdapterFactory()


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance."""
    return adapter_factory
