"""Tests for content, relevance and intolerance filtering."""

import json

import pytest

from nutriscout.services.product_filters import (
    ContentFilter,
    FilterRules,
    IntoleranceFilter,
    KeywordMatcher,
    apply_content_and_relevance,
    apply_intolerances,
)

from conftest import make_product


@pytest.fixture(scope="module")
def rules() -> FilterRules:
    return FilterRules.load()


class TestKeywordMatcher:
    def test_whole_words_and_plurals(self):
        matcher = KeywordMatcher(["pan", "leche"])

        assert matcher.matches("pan integral")
        assert matcher.matches("leches chocolatadas")
        assert not matcher.matches("panceta ahumada")

    def test_prefix_and_phrase(self):
        matcher = KeywordMatcher(["lact*", "dulce de leche"])

        assert matcher.search("bebida lactea") == "lact"
        assert matcher.matches("alfajor de dulce de leche")
        assert not matcher.matches("dulce de membrillo")

    def test_empty_matcher(self):
        assert not KeywordMatcher([]).matches("leche")


class TestContentAndRelevance:
    """Tests for apply_content_and_relevance."""

    def test_non_food_is_dropped_before_relevance(self, rules):
        products = [make_product("Shampoo anticaspo"), make_product("Pechuga de pollo"), make_product("Arroz largo fino")]

        outcome = apply_content_and_relevance(products, "pollo", rules)

        assert [p.product_name for p in outcome.products] == ["Pechuga de pollo"]
        assert outcome.removed_content == 1
        assert outcome.removed_relevance == 1
        assert outcome.removed == 2

    def test_exception_phrases_survive_blocked_word(self, rules):
        content = ContentFilter(rules)

        assert content.is_allowed(make_product("Queso crema light"))
        assert content.is_allowed(make_product("Crema de maní natural"))
        assert content.blocked_term(make_product("Crema corporal humectante")) == "crema"

    def test_junk_food_and_brands_blocked(self, rules):
        outcome = apply_content_and_relevance(
            [make_product("Gaseosa cola 2 L"), make_product("Galletitas", brand="Oreo")],
            "galletitas",
            rules,
        )
        assert outcome.products == []

    def test_relevance_checks_brand_and_claims(self, rules):
        product = make_product("Bebida vegetal", brand="Almendras del Valle", nutritional_claims=["Sin TACC"])

        assert apply_content_and_relevance([product], "almendras", rules).products == [product]
        assert apply_content_and_relevance([product], "sin tacc", rules).products == [product]

    def test_short_query_uses_whole_query(self, rules):
        product = make_product("Té verde")
        assert apply_content_and_relevance([product], "té", rules).products == [product]


class TestIntolerances:
    """Tests for IntoleranceFilter and apply_intolerances."""

    def test_lactose(self, rules):
        products = [
            make_product("Queso crema"),
            make_product("Yogur sin lactosa"),
            make_product("Leche deslactosada"),
            make_product("Bebida de almendras"),
            make_product("Manteca"),
        ]

        kept, removed = apply_intolerances(products, ["Lactosa"], rules)

        assert [p.product_name for p in kept] == ["Yogur sin lactosa", "Leche deslactosada", "Bebida de almendras"]
        assert removed == 2

    def test_gluten_with_claims(self, rules):
        products = [
            make_product("Pan lactal"),
            make_product("Galletitas de arroz", nutritional_claims=["Sin TACC"]),
            make_product("Manzana roja"),
        ]

        kept, removed = apply_intolerances(products, ["celíaco"], rules)

        assert [p.product_name for p in kept] == ["Galletitas de arroz", "Manzana roja"]
        assert removed == 1

    def test_unknown_tags_do_nothing(self, rules):
        products = [make_product("Pan lactal")]
        assert apply_intolerances(products, ["mariscos raros"], rules) == (products, 0)
        assert apply_intolerances(products, None, rules) == (products, 0)

    def test_conflict_names_rule(self, rules):
        intolerance = IntoleranceFilter(rules, ["gluten", "lactosa"])
        assert intolerance.conflict(make_product("Fideos de trigo")) == "gluten"


class TestRulesFile:
    def test_load_from_path(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({
            "version": 9,
            "content": {"blocked_keywords": {"es": ["carbon"]}},
            "intolerances": {},
        }), encoding="utf-8")

        rules = FilterRules.load(str(path))

        assert rules.version == 9
        assert not ContentFilter(rules).is_allowed(make_product("Carbón vegetal"))
        assert ContentFilter(rules).is_allowed(make_product("Shampoo"))
