"""Brand and source adapters."""

from nutriscout.scrapers.adapters.carrefour import CarrefourAdapter
from nutriscout.scrapers.adapters.cencosud import CencosudAdapter, DiscoAdapter, JumboAdapter, VeaAdapter
from nutriscout.scrapers.adapters.coto import CotoAdapter
from nutriscout.scrapers.adapters.instagram import InstagramSourceAdapter
from nutriscout.scrapers.adapters.website import WebsiteSourceAdapter

__all__ = [
    # Brand adapters
    "CarrefourAdapter",
    "CencosudAdapter",
    "CotoAdapter",
    "DiscoAdapter",
    "JumboAdapter",
    "VeaAdapter",
    # Source adapters
    "InstagramSourceAdapter",
    "WebsiteSourceAdapter",
]
