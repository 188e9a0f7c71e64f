"""Content, relevance and dietary intolerance filters for scraped products.

Keyword lists live in a versioned JSON file (``data/filter_rules.json``,
overridable with FILTER_RULES_PATH) so they can be tuned without code
changes. All terms are written pre-normalized (lowercase, no accents).

Term syntax:
- ``"leche"`` matches the whole word, plus plural "leches"
- ``"dulce de leche"`` matches the phrase as consecutive whole words
- ``"lact*"`` matches any word starting with "lact"
"""

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from nutriscout.config import settings
from nutriscout.scrapers.base import ScrapedProduct
from nutriscout.scrapers.utils.normalizer import normalize_text

logger = structlog.get_logger(__name__)


class KeywordMatcher:
    """Compiled word-boundary matcher over normalized text."""

    def __init__(self, terms: Iterable[str]):
        patterns = []
        for term in terms:
            prefix = term.endswith("*")
            words = normalize_text(term.rstrip("*"))
            if not words:
                continue
            body = re.escape(words).replace(r"\ ", " ")
            patterns.append(rf"\b{body}" if prefix else rf"\b{body}(?:s|es)?\b")
        self.terms = list(terms)
        self._regex = re.compile("|".join(patterns)) if patterns else None

    def search(self, normalized_text: str) -> Optional[str]:
        """Return the first matching fragment, or None."""
        if self._regex is None or not normalized_text:
            return None
        match = self._regex.search(normalized_text)
        return match.group(0) if match else None

    def matches(self, normalized_text: str) -> bool:
        return self.search(normalized_text) is not None


@dataclass
class IntoleranceRule:
    name: str
    synonyms: KeywordMatcher
    blocked: KeywordMatcher
    safe_markers: KeywordMatcher


@dataclass
class FilterRules:
    """Parsed, compiled filter configuration."""

    version: int
    exception_phrases: List[str]
    blocked: KeywordMatcher
    min_token_length: int = 3
    intolerances: Dict[str, IntoleranceRule] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "FilterRules":
        content = data.get("content", {})
        blocked_terms: List[str] = []
        for terms in content.get("blocked_keywords", {}).values():
            blocked_terms.extend(terms)
        blocked_terms.extend(content.get("junk_food", []))
        blocked_terms.extend(content.get("blocked_brands", []))

        intolerances = {
            name: IntoleranceRule(
                name=name,
                synonyms=KeywordMatcher(rule.get("synonyms", [])),
                blocked=KeywordMatcher(rule.get("blocked", [])),
                safe_markers=KeywordMatcher(rule.get("safe_markers", [])),
            )
            for name, rule in data.get("intolerances", {}).items()
        }

        # Longest first so "queso crema" is removed before shorter overlaps
        exceptions = sorted(
            (normalize_text(p) for p in content.get("exception_phrases", [])),
            key=len,
            reverse=True,
        )

        return cls(
            version=int(data.get("version", 1)),
            exception_phrases=[p for p in exceptions if p],
            blocked=KeywordMatcher(blocked_terms),
            min_token_length=int(data.get("relevance", {}).get("min_token_length", 3)),
            intolerances=intolerances,
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "FilterRules":
        """Load rules from ``path`` or the packaged default file."""
        if path:
            raw = Path(path).read_text(encoding="utf-8")
        else:
            raw = resources.files("nutriscout").joinpath("data/filter_rules.json").read_text(encoding="utf-8")
        rules = cls.from_dict(json.loads(raw))
        logger.info("filter_rules_loaded", version=rules.version, path=path or "packaged")
        return rules


@lru_cache(maxsize=4)
def _load_rules(path: str) -> FilterRules:
    return FilterRules.load(path or None)


def get_filter_rules() -> FilterRules:
    """Rules from FILTER_RULES_PATH (or packaged), loaded once per path."""
    return _load_rules(settings.FILTER_RULES_PATH)


def _product_text(product: ScrapedProduct, include_claims: bool = True, include_unit: bool = False) -> str:
    parts = [product.product_name, product.brand or ""]
    if include_claims:
        parts.extend(product.nutritional_claims)
    if include_unit and product.unit:
        parts.append(product.unit)
    return normalize_text(" ".join(parts))


class ContentFilter:
    """Drops non-food items, junk food and blocked brands."""

    def __init__(self, rules: FilterRules):
        self.rules = rules

    def blocked_term(self, product: ScrapedProduct) -> Optional[str]:
        """The blocked term that matched the product, or None if allowed."""
        text = f" {_product_text(product, include_claims=False)} "
        for phrase in self.rules.exception_phrases:
            text = text.replace(f" {phrase} ", " ")
        return self.rules.blocked.search(text.strip())

    def is_allowed(self, product: ScrapedProduct) -> bool:
        return self.blocked_term(product) is None


class RelevanceFilter:
    """Keeps products whose text mentions the searched food."""

    def __init__(self, rules: FilterRules, query: str):
        normalized = normalize_text(query)
        tokens = [t for t in normalized.split() if len(t) >= rules.min_token_length]
        self.needles = tokens or ([normalized] if normalized else [])

    def is_relevant(self, product: ScrapedProduct) -> bool:
        if not self.needles:
            return True
        haystack = _product_text(product, include_unit=True)
        return any(needle in haystack for needle in self.needles)


class IntoleranceFilter:
    """Excludes products that conflict with the user's intolerances.

    Each free-text user tag is mapped to zero or more configured
    intolerances via their synonym lists. A product passes a rule when it
    carries a safe marker or mentions none of the blocked terms; it must
    pass every matched rule.
    """

    def __init__(self, rules: FilterRules, intolerances: Optional[Sequence[str]]):
        self.active: List[IntoleranceRule] = []
        for rule in rules.intolerances.values():
            if any(rule.synonyms.matches(normalize_text(tag)) for tag in intolerances or []):
                self.active.append(rule)

    @property
    def enabled(self) -> bool:
        return bool(self.active)

    def conflict(self, product: ScrapedProduct) -> Optional[str]:
        """Name of the first intolerance the product violates, or None."""
        text = _product_text(product)
        for rule in self.active:
            if rule.blocked.matches(text) and not rule.safe_markers.matches(text):
                return rule.name
        return None

    def is_safe(self, product: ScrapedProduct) -> bool:
        return self.conflict(product) is None


@dataclass
class FilterOutcome:
    products: List[ScrapedProduct]
    removed_content: int = 0
    removed_relevance: int = 0
    removed_intolerance: int = 0

    @property
    def removed(self) -> int:
        return self.removed_content + self.removed_relevance + self.removed_intolerance


def apply_content_and_relevance(
    products: Iterable[ScrapedProduct],
    query: str,
    rules: Optional[FilterRules] = None,
) -> FilterOutcome:
    """Content safety then query relevance, in that order."""
    rules = rules or get_filter_rules()
    content = ContentFilter(rules)
    relevance = RelevanceFilter(rules, query)

    outcome = FilterOutcome(products=[])
    for product in products:
        if not content.is_allowed(product):
            outcome.removed_content += 1
        elif not relevance.is_relevant(product):
            outcome.removed_relevance += 1
        else:
            outcome.products.append(product)
    return outcome


def apply_intolerances(
    products: Iterable[ScrapedProduct],
    intolerances: Optional[Sequence[str]],
    rules: Optional[FilterRules] = None,
) -> Tuple[List[ScrapedProduct], int]:
    """Drop products conflicting with the user's intolerances.

    Returns:
        (kept products, number removed)
    """
    products = list(products)
    intolerance_filter = IntoleranceFilter(rules or get_filter_rules(), intolerances)
    if not intolerance_filter.enabled:
        return products, 0

    kept = [p for p in products if intolerance_filter.is_safe(p)]
    return kept, len(products) - len(kept)
