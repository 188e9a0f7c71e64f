"""Register all scrape adapters with the factory.

Called during application startup (and by the worker CLI) before any
scraping happens. Registration is followed by validation, so a missing
adapter stops startup.
"""

from typing import Optional

import structlog

from nutriscout.scrapers.factory import AdapterFactory, get_adapter_factory
from nutriscout.scrapers.adapters import (
    # Brand adapters
    CarrefourAdapter,
    CotoAdapter,
    DiscoAdapter,
    JumboAdapter,
    VeaAdapter,
    # Source adapters
    InstagramSourceAdapter,
    WebsiteSourceAdapter,
)

logger = structlog.get_logger(__name__)

BRAND_ADAPTERS = [
    ("COTO", CotoAdapter),
    ("CARREFOUR", CarrefourAdapter),
    ("JUMBO", JumboAdapter),
    ("VEA", VeaAdapter),
    ("DISCO", DiscoAdapter),
]

SOURCE_ADAPTERS = [
    ("website", WebsiteSourceAdapter),
    ("instagram", InstagramSourceAdapter),
]


def register_all_adapters(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Register and validate every adapter.

    Raises:
        AdapterRegistryError: if a supported brand or source type is left without an adapter
    """
    factory = factory or get_adapter_factory()

    for brand, adapter_class in BRAND_ADAPTERS:
        factory.register_brand_adapter(brand, adapter_class)
    for source_type, adapter_class in SOURCE_ADAPTERS:
        factory.register_source_adapter(source_type, adapter_class)

    factory.validate()

    logger.info(
        "all_adapters_registered",
        brands=factory.get_registered_brands(),
        source_types=factory.get_registered_source_types(),
    )
    return factory
