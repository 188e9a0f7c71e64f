"""Base scraper adapter interface.

Brand adapters (one per supermarket chain) and source adapters (generic
website, social feed) inherit from the classes defined here and implement
``scrape()``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus
import structlog

from nutriscout.scrapers.utils.normalizer import (
    PriceNormalizer,
    normalize_url,
    parse_quantity,
    truncate,
)

MAX_NAME_LENGTH = 255
MAX_BRAND_LENGTH = 100
MAX_URL_LENGTH = 500
MAX_UNIT_LENGTH = 20
MAX_CLAIMS = 10


@dataclass
class ScrapedProduct:
    """Normalized product returned by every adapter and by the HTML parser.

    The store_* / distance fields are filled in by the orchestrator once the
    product is attributed to a store.
    """

    product_name: str
    price_current: Decimal
    brand: Optional[str] = None
    price_regular: Optional[Decimal] = None
    unit: Optional[str] = None
    quantity: Optional[Decimal] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    nutritional_claims: List[str] = field(default_factory=list)
    nutrition_info: Dict[str, Any] = field(default_factory=dict)

    store_id: Optional[str] = None
    store_name: Optional[str] = None
    store_brand: Optional[str] = None
    distance_meters: Optional[int] = None
    store_latitude: Optional[float] = None
    store_longitude: Optional[float] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.product_name or not self.product_name.strip():
            raise ValueError("product_name is required")
        if not isinstance(self.price_current, Decimal):
            raise ValueError("price_current must be a Decimal")
        if not self.price_current.is_finite() or self.price_current <= 0:
            raise ValueError("price_current must be a positive finite Decimal")

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], base_url: Optional[str] = None) -> Optional["ScrapedProduct"]:
        """Build a product from loosely typed data (LLM output, JSON APIs).

        Prices are coerced, text is trimmed to column lengths and relative
        URLs are resolved against ``base_url``. Returns None when the item
        has no usable name or price.
        """
        if not isinstance(raw, dict):
            return None

        name = truncate(raw.get("product_name") or raw.get("name"), MAX_NAME_LENGTH)
        price = PriceNormalizer.coerce_price(raw.get("price_current"))
        if not name or price is None:
            return None

        claims = raw.get("nutritional_claims") or []
        if isinstance(claims, str):
            claims = [claims]
        if not isinstance(claims, list):
            claims = []
        claims = [c.strip() for c in claims if isinstance(c, str) and c.strip()][:MAX_CLAIMS]

        nutrition_info = raw.get("nutrition_info")
        if not isinstance(nutrition_info, dict):
            nutrition_info = {}

        unit = truncate(raw.get("unit"), MAX_UNIT_LENGTH)

        product_url = normalize_url(raw.get("product_url"), base_url)
        image_url = normalize_url(raw.get("image_url"), base_url)

        return cls(
            product_name=name,
            price_current=price,
            brand=truncate(raw.get("brand"), MAX_BRAND_LENGTH),
            price_regular=PriceNormalizer.coerce_price(raw.get("price_regular")),
            unit=unit.lower() if unit else None,
            quantity=parse_quantity(raw.get("quantity")),
            image_url=image_url[:MAX_URL_LENGTH] if image_url else None,
            product_url=product_url[:MAX_URL_LENGTH] if product_url else None,
            nutritional_claims=claims,
            nutrition_info=nutrition_info,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used for the search cache and API."""
        return {
            "product_name": self.product_name,
            "brand": self.brand,
            "price_current": float(self.price_current),
            "price_regular": float(self.price_regular) if self.price_regular is not None else None,
            "unit": self.unit,
            "quantity": float(self.quantity) if self.quantity is not None else None,
            "image_url": self.image_url,
            "product_url": self.product_url,
            "nutritional_claims": list(self.nutritional_claims),
            "nutrition_info": dict(self.nutrition_info),
            "store_id": self.store_id,
            "store_name": self.store_name,
            "store_brand": self.store_brand,
            "distance_meters": self.distance_meters,
            "store_latitude": self.store_latitude,
            "store_longitude": self.store_longitude,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["ScrapedProduct"]:
        """Rebuild a product from ``to_dict()`` output, None if invalid."""
        product = cls.from_raw(data)
        if product is None:
            return None
        product.store_id = data.get("store_id")
        product.store_name = data.get("store_name")
        product.store_brand = data.get("store_brand")
        product.distance_meters = data.get("distance_meters")
        product.store_latitude = data.get("store_latitude")
        product.store_longitude = data.get("store_longitude")
        return product


@dataclass
class ScrapeContext:
    """Store (and optional source) an adapter is scraping for."""

    store_id: Optional[str] = None
    store_name: Optional[str] = None
    store_brand: Optional[str] = None
    store_website: Optional[str] = None
    source_identifier: Optional[str] = None
    source_config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FetchConfig:
    """How a brand adapter wants a search page rendered.

    ``url_template`` contains a ``{query}`` placeholder that receives the
    URL-encoded search term.
    """

    url_template: str
    wait_selector: Optional[str] = None
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    scroll: bool = False
    scroll_count: int = 0
    extra_wait_ms: int = 0

    def build_url(self, query: str) -> str:
        return self.url_template.format(query=quote_plus(query.strip()))


class BaseAdapter(ABC):
    """Abstract base class for all scrape adapters.

    Subclasses set ``key`` and implement ``scrape()``. Shared services are
    injected by the adapter factory after construction.
    """

    key: str = ""  # Must be overridden in subclass (e.g., "COTO", "website")
    kind: str = ""  # 'brand' or 'source'

    def __init__(self):
        """Initialize the adapter with dependency injection points."""
        self.rate_limiter = None  # DomainRateLimiter, injected by factory
        self.http_client = None  # httpx.AsyncClient, injected by factory
        self.logger = structlog.get_logger(adapter=self.key)

    @abstractmethod
    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        """Search ``query`` at the store described by ``context``.

        Returns:
            List of ScrapedProduct objects

        Raises:
            ScraperError / httpx errors: callers use safe_scrape() to contain them
        """
        pass

    async def safe_scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        """Run scrape() and turn any failure into an empty result."""
        try:
            products = await self.scrape(query, context)
        except Exception as e:
            self.logger.warning(
                "adapter_failed",
                query=query,
                store_id=context.store_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        self.logger.info(
            "adapter_completed",
            query=query,
            store_id=context.store_id,
            products=len(products),
        )
        return products

    async def _throttle(self, url: str) -> None:
        if self.rate_limiter:
            await self.rate_limiter.acquire_for_url(url)


class BaseBrandAdapter(BaseAdapter):
    """Adapter bound to one supermarket chain."""

    kind = "brand"
    base_url: str = ""


class BrandRenderAdapter(BaseBrandAdapter):
    """Brand adapter that renders a search page and lets the LLM parse it.

    Subclasses only describe the page through ``fetch_config()``.
    """

    def __init__(self):
        super().__init__()
        self.render_client = None  # RenderClient, injected
        self.html_parser = None  # GroqHtmlParser, injected

    @abstractmethod
    def fetch_config(self, query: str) -> FetchConfig:
        """Describe the search page to render for ``query``."""
        pass

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        if self.render_client is None or self.html_parser is None:
            raise RuntimeError(f"{self.key} adapter requires render_client and html_parser")

        config = self.fetch_config(query)
        url = config.build_url(query)
        await self._throttle(url)

        self.logger.info("rendering_search_page", url=url)
        html = await self.render_client.render(
            url,
            wait_selector=config.wait_selector,
            scroll_count=config.scroll_count if config.scroll else 0,
            cookies=config.cookies or None,
            extra_wait_ms=config.extra_wait_ms,
        )

        parse_context = ScrapeContext(
            store_id=context.store_id,
            store_name=context.store_name,
            store_brand=self.key,
            store_website=url,
        )
        return await self.html_parser.parse(html, parse_context)


class BaseSourceAdapter(BaseAdapter):
    """Adapter for a per-store source such as a website or social feed."""

    kind = "source"
    source_type: str = ""

    def __init__(self):
        super().__init__()
        self.html_parser = None  # GroqHtmlParser, injected when needed
