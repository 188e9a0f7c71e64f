"""Data normalization utilities for text matching, price and quantity parsing."""

import math
import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import urljoin, urlparse, parse_qs, urlencode, urlunparse


_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NUMBER_RUN = re.compile(r"\d[\d.,]*")
_CENTS = Decimal("0.01")


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace.

    "Leche Descremada  La Serenísima!" -> "leche descremada la serenisima"
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped).strip()


class PriceNormalizer:
    """Price parsing for Argentine and international price formats.

    Supermarket sites in Argentina write "$ 1.234,56" while APIs and the
    language model tend to return "1234.56" or plain numbers. Both must end
    up as the same Decimal.
    """

    @staticmethod
    def _unify_separators(number: str) -> str:
        has_dot = "." in number
        has_comma = "," in number

        if has_dot and has_comma:
            # The separator that appears last is the decimal one
            if number.rfind(",") > number.rfind("."):
                return number.replace(".", "").replace(",", ".")
            return number.replace(",", "")

        if has_comma:
            whole, _, frac = number.rpartition(",")
            if number.count(",") == 1 and 1 <= len(frac) <= 2:
                return f"{whole}.{frac}"
            return number.replace(",", "")

        if has_dot:
            whole, _, frac = number.rpartition(".")
            # "1.234" and "12.345.678" are thousand separators in es-AR
            if number.count(".") > 1 or len(frac) == 3:
                return number.replace(".", "")
            return number

        return number

    @classmethod
    def clean_price_string(cls, raw: Optional[str]) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles various formats:
        - "$ 1.234,56" -> 1234.56
        - "1,234.56" -> 1234.56
        - "ARS 899" -> 899
        - "12.99" -> 12.99

        Args:
            raw: Raw price string

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None

        match = _NUMBER_RUN.search(raw)
        if not match:
            return None

        number = cls._unify_separators(match.group(0).rstrip(".,"))
        try:
            return Decimal(number)
        except InvalidOperation:
            return None

    @classmethod
    def coerce_price(cls, value: Any) -> Optional[Decimal]:
        """Coerce any price-like value into a positive finite Decimal.

        Returns None for missing, non-numeric, zero, negative, NaN or
        infinite values. Results are rounded to cents.
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, Decimal):
            price = value
        elif isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                return None
            price = Decimal(str(value))
        elif isinstance(value, str):
            price = cls.clean_price_string(value)
        else:
            return None

        if price is None or not price.is_finite() or price <= 0:
            return None
        return price.quantize(_CENTS)


def parse_quantity(value: Any) -> Optional[Decimal]:
    """Parse a package quantity such as 500, "1,5" or "900 ml"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        quantity = Decimal(str(value))
    elif isinstance(value, str):
        match = re.search(r"\d+(?:[.,]\d+)?", value)
        if not match:
            return None
        try:
            quantity = Decimal(match.group(0).replace(",", "."))
        except InvalidOperation:
            return None
    else:
        return None

    if not quantity.is_finite() or quantity <= 0:
        return None
    return quantity


def truncate(value: Optional[str], max_length: int) -> Optional[str]:
    """Trim and cut a string to a column length; empty becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    return value[:max_length]


def normalize_url(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Resolve a possibly relative URL and drop tracking parameters.

    Args:
        url: URL to normalize
        base_url: Page URL used to resolve relative links

    Returns:
        Absolute http(s) URL, or None if it cannot be made absolute
    """
    if not url or not isinstance(url, str):
        return None

    url = url.strip()
    if base_url:
        url = urljoin(base_url, url)

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None

    tracking_params = [
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_content",
        "utm_term",
        "fbclid",
        "gclid",
        "igshid",
    ]

    query_params = parse_qs(parsed.query)
    filtered_params = {
        k: v for k, v in query_params.items() if k not in tracking_params
    }
    new_query = urlencode(filtered_params, doseq=True)

    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )
