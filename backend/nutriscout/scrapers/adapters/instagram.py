"""Instagram source adapter.

Small shops often publish offers only on Instagram. Recent posts are read
from the Instagram Graph API and captions that mention the query and carry
a price become products.
Documentation: https://developers.facebook.com/docs/instagram-platform/reference/instagram-media
"""

import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from nutriscout.config import settings
from nutriscout.scrapers.base import BaseSourceAdapter, ScrapedProduct, ScrapeContext
from nutriscout.scrapers.utils.normalizer import PriceNormalizer, normalize_text
from nutriscout.scrapers.utils.retry import http_retry

MEDIA_FIELDS = "id,caption,permalink,media_url,media_type,timestamp"

PRICE_PATTERN = re.compile(
    r"(?:\$|\bars\b|\busd\b|\bprecio\b)[^0-9\n]{0,12}(\d{1,3}(?:[.,]\d{3})+(?:,\d{2})?|\d{2,6}(?:[.,]\d{2})?)",
    re.IGNORECASE,
)

CLAIM_PATTERNS = [
    (re.compile(r"sin\s+tacc|gluten\s*free|libre\s+de\s+gluten", re.IGNORECASE), "Sin TACC"),
    (re.compile(r"vegan[oa]|plant\s+based|origen\s+vegetal", re.IGNORECASE), "Vegano"),
    (re.compile(r"sin\s+az[uú]car", re.IGNORECASE), "Sin azúcar"),
    (re.compile(r"alto\s+en\s+prote[ií]nas?", re.IGNORECASE), "Alto en proteínas"),
]

DEFAULT_LIMIT = 25
MAX_NAME_CHARS = 80


def extract_price(caption: str) -> Optional[Decimal]:
    match = PRICE_PATTERN.search(caption or "")
    if not match:
        return None
    return PriceNormalizer.coerce_price(match.group(1))


def extract_claims(caption: str) -> List[str]:
    return [label for pattern, label in CLAIM_PATTERNS if pattern.search(caption or "")]


def matches_query(caption: str, query: str) -> bool:
    """True when any query word appears in the caption (accent-insensitive)."""
    tokens = normalize_text(query).split()
    if not tokens:
        return True
    haystack = normalize_text(caption)
    return any(token in haystack for token in tokens)


def build_product_name(caption: str, fallback: str) -> str:
    lines = (caption or "").strip().splitlines()
    first_line = lines[0].strip() if lines else ""
    if not first_line:
        return fallback
    if len(first_line) > MAX_NAME_CHARS:
        return first_line[: MAX_NAME_CHARS - 3] + "..."
    return first_line


class InstagramSourceAdapter(BaseSourceAdapter):
    """Reads a business account's recent media through the Graph API."""

    key = "instagram"
    source_type = "instagram"

    @staticmethod
    def _resolve_token(config: Dict[str, Any]) -> str:
        return config.get("access_token") or config.get("accessToken") or settings.INSTAGRAM_ACCESS_TOKEN

    @staticmethod
    def _resolve_account_id(context: ScrapeContext) -> Optional[str]:
        config = context.source_config
        return (
            config.get("business_account_id")
            or config.get("businessAccountId")
            or config.get("user_id")
            or context.source_identifier
        )

    @staticmethod
    def _resolve_limit(config: Dict[str, Any]) -> int:
        limit = config.get("limit", DEFAULT_LIMIT)
        if not isinstance(limit, int) or isinstance(limit, bool):
            limit = DEFAULT_LIMIT
        return min(max(limit, 5), 50)

    @http_retry
    async def _fetch_media(self, account_id: str, token: str, limit: int) -> List[Dict[str, Any]]:
        url = f"{settings.INSTAGRAM_GRAPH_URL}/{account_id}/media"
        await self._throttle(url)
        params = {"fields": MEDIA_FIELDS, "access_token": token, "limit": limit}
        headers = {"User-Agent": settings.SCRAPER_USER_AGENT}

        if self.http_client is None:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.get(url, params=params, headers=headers)
        else:
            response = await self.http_client.get(url, params=params, headers=headers)

        response.raise_for_status()
        data = response.json().get("data")
        return data if isinstance(data, list) else []

    async def scrape(self, query: str, context: ScrapeContext) -> List[ScrapedProduct]:
        token = self._resolve_token(context.source_config)
        account_id = self._resolve_account_id(context)
        if not token or not account_id:
            self.logger.warning("instagram_credentials_missing", store_id=context.store_id)
            return []

        posts = await self._fetch_media(account_id, token, self._resolve_limit(context.source_config))
        fallback_name = context.store_name or "Producto del local"

        products = []
        for post in posts:
            caption = post.get("caption") if isinstance(post.get("caption"), str) else ""
            if not matches_query(caption, query):
                continue
            price = extract_price(caption)
            if price is None:
                continue

            product = ScrapedProduct.from_raw(
                {
                    "product_name": build_product_name(caption, fallback_name),
                    "brand": context.store_brand or context.store_name,
                    "price_current": price,
                    "image_url": post.get("media_url") if isinstance(post.get("media_url"), str) else None,
                    "product_url": post.get("permalink") if isinstance(post.get("permalink"), str) else None,
                    "nutritional_claims": extract_claims(caption),
                }
            )
            if product is not None:
                products.append(product)

        self.logger.info("instagram_posts_scanned", posts=len(posts), products=len(products))
        return products
