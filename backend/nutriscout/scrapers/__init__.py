"""Scraper system for fetching grocery products from nearby stores.

This package provides:
- Base adapter classes and the ScrapedProduct structure
- Brand adapters (supermarket chains) and source adapters (website, Instagram)
- The generic Groq HTML parser and headless render backends
- Factory holding the adapter registries
- Scheduler for background scraping
"""

from .base import (
    BaseAdapter,
    BaseBrandAdapter,
    BaseSourceAdapter,
    BrandRenderAdapter,
    FetchConfig,
    ScrapeContext,
    ScrapedProduct,
)
from .factory import AdapterFactory, adapter_factory, get_adapter_factory

__all__ = [
    # Base classes
    "BaseAdapter",
    "BaseBrandAdapter",
    "BaseSourceAdapter",
    "BrandRenderAdapter",
    # Data structures
    "FetchConfig",
    "ScrapeContext",
    "ScrapedProduct",
    # Factory
    "AdapterFactory",
    "adapter_factory",
    "get_adapter_factory",
]
