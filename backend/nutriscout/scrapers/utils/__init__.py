"""Scraper utilities for rate limiting, retries and data normalization."""

from .rate_limiter import DomainRateLimiter, TokenBucket
from .normalizer import (
    PriceNormalizer,
    normalize_text,
    normalize_url,
    parse_quantity,
    truncate,
)
from .retry import http_retry, is_transient_http_error


__all__ = [
    # Rate limiting
    "DomainRateLimiter",
    "TokenBucket",
    # Normalization
    "PriceNormalizer",
    "normalize_text",
    "normalize_url",
    "parse_quantity",
    "truncate",
    # Retry decorators
    "http_retry",
    "is_transient_http_error",
]
