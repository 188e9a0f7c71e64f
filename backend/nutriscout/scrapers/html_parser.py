"""Generic HTML -> product extraction using the Groq hosted LLM.

Any page that is not covered by a structured API (supermarket search pages,
small shop websites) goes through this parser: the HTML is stripped down to
its content, truncated, and the model is asked for a JSON product list.
"""

import json
import re
import time
from typing import Callable, List, Optional

import groq
import structlog
from bs4 import BeautifulSoup, Comment

from nutriscout.config import settings
from nutriscout.scrapers.base import ScrapedProduct, ScrapeContext
from nutriscout.services.llm_client import get_groq_client, parse_json_object

logger = structlog.get_logger(__name__)

_STRIP_TAGS = ["script", "style", "svg", "noscript", "iframe", "link", "meta", "footer", "nav", "header"]
_KEEP_ATTRIBUTES = {"href", "src", "alt", "title"}
_WHITESPACE = re.compile(r"\s+")

SYSTEM_PROMPT = (
    "You extract grocery product listings from supermarket and shop web pages "
    "in Argentina. Prices use '.' as thousands separator and ',' for decimals "
    "(\"$ 1.234,56\" is 1234.56).\n\n"
    "Return ONLY a JSON object of the form {\"products\": [...]}. Each product has: "
    "product_name (string), brand (string or null), price_current (number, the "
    "price the customer pays now), price_regular (number or null, the crossed-out "
    "price), unit (one of g, kg, ml, l, un, or null), quantity (number or null), "
    "nutritional_claims (array of strings such as 'Sin TACC', 'Vegano', 'Sin azúcar'), "
    "nutrition_info (object, may be empty), image_url (string or null), "
    "product_url (string or null).\n"
    "Only include real products with a visible price. Never invent data. "
    "If there are no products return {\"products\": []}. No markdown, no commentary."
)


class GroqHtmlParser:
    """Turns raw HTML into ScrapedProduct objects via the Groq chat API.

    A rate-limit response opens a cooldown window on this instance. While it
    is open, parse() returns an empty list without calling the model.
    """

    def __init__(
        self,
        client: Optional[groq.AsyncGroq] = None,
        model: Optional[str] = None,
        min_html_chars: Optional[int] = None,
        max_chars: Optional[int] = None,
        cooldown_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self.model = model or settings.GROQ_MODEL
        self.min_html_chars = min_html_chars if min_html_chars is not None else settings.HTML_PARSER_MIN_HTML_CHARS
        self.max_chars = max_chars if max_chars is not None else settings.HTML_PARSER_MAX_CHARS
        self.cooldown_seconds = cooldown_seconds if cooldown_seconds is not None else settings.LLM_RATE_LIMIT_COOLDOWN_SECONDS
        self._clock = clock
        self._cooldown_until = 0.0
        self.logger = logger.bind(service="html_parser")

    @property
    def client(self) -> Optional[groq.AsyncGroq]:
        if self._client is None:
            self._client = get_groq_client()
        return self._client

    def in_cooldown(self) -> bool:
        return self._clock() < self._cooldown_until

    def _start_cooldown(self, error: groq.RateLimitError) -> None:
        seconds = float(self.cooldown_seconds)
        retry_after = error.response.headers.get("retry-after") if error.response is not None else None
        if retry_after:
            try:
                seconds = max(seconds, float(retry_after))
            except ValueError:
                pass
        self._cooldown_until = self._clock() + seconds
        self.logger.warning("llm_rate_limited", cooldown_seconds=seconds)

    @staticmethod
    def clean_html(html: str, max_chars: int) -> str:
        """Strip non-content markup, collapse whitespace and truncate."""
        soup = BeautifulSoup(html, "html.parser")

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()
        for tag in soup(_STRIP_TAGS):
            tag.decompose()
        for tag in soup.find_all(True):
            tag.attrs = {k: v for k, v in tag.attrs.items() if k in _KEEP_ATTRIBUTES}

        body = soup.body or soup
        cleaned = _WHITESPACE.sub(" ", str(body)).strip()
        return cleaned[:max_chars]

    async def parse(self, html: Optional[str], context: Optional[ScrapeContext] = None) -> List[ScrapedProduct]:
        """Extract products from ``html``.

        Returns an empty list for short pages, during a rate-limit cooldown,
        when no API key is configured, and on any model or JSON failure.
        """
        if not html or len(html) < self.min_html_chars:
            self.logger.debug("html_too_short", length=len(html or ""))
            return []

        if self.in_cooldown():
            self.logger.info("llm_cooldown_skip")
            return []

        client = self.client
        if client is None:
            return []

        content = self.clean_html(html, self.max_chars)
        base_url = context.store_website if context else None
        store_label = (context.store_name or context.store_brand) if context else None

        user_prompt = f"Store: {store_label or 'unknown'}\nPage URL: {base_url or 'unknown'}\n\n{content}"

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
                max_tokens=4000,
            )
        except groq.RateLimitError as e:
            self._start_cooldown(e)
            return []
        except groq.APIError as e:
            self.logger.warning("llm_request_failed", error=str(e), error_type=type(e).__name__)
            return []

        try:
            payload = parse_json_object(response.choices[0].message.content)
            items = payload["products"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            self.logger.warning("llm_response_invalid", error=str(e))
            return []

        if not isinstance(items, list):
            self.logger.warning("llm_response_invalid", error="products is not a list")
            return []

        products = []
        for item in items:
            product = ScrapedProduct.from_raw(item, base_url=base_url)
            if product is not None:
                products.append(product)

        self.logger.info(
            "html_parsed",
            store=store_label,
            html_chars=len(html),
            prompt_chars=len(content),
            items=len(items),
            products=len(products),
        )
        return products


_html_parser: Optional[GroqHtmlParser] = None


def get_html_parser() -> GroqHtmlParser:
    """Get the process-wide parser so the rate-limit cooldown is shared."""
    global _html_parser
    if _html_parser is None:
        _html_parser = GroqHtmlParser()
    return _html_parser
