"""
Tests for material_search/formatting.py - markdown rendering
"""

import pytest

from material_search.collection_router import CollectionRouter, compute_stats
from material_search.formatting import (
    TABLE_HEADERS,
    display_language,
    format_availability,
    format_error_message,
    format_results_table,
    format_scope,
    format_search_results,
)
from material_search.models import (
    CollectionType,
    Language,
    MatchType,
    MaterialDocument,
    SourceStore,
    UnifiedSearchResult,
)
from material_search.query_classifier import QueryClassifier


def make_result(code, collection=CollectionType.IN_STOCK, score=0.9, **fields):
    document = MaterialDocument(material_code=code, source_collection=collection, **fields)
    return UnifiedSearchResult(
        document=document,
        score=score,
        match_type=MatchType.SEMANTIC,
        confidence=score,
        source_store=SourceStore.PINECONE,
        source_collection=collection,
        availability=document.availability,
    )


@pytest.fixture
def results():
    return [
        make_result("RM000123", trade_name="Hydra Boost HA", inci_name="Sodium Hyaluronate",
                    supplier="Bloomage", cost=1250.5, score=0.93),
        make_result("RM000888", CollectionType.ALL_FDA, trade_name="Glycerin 99",
                    company_name="Acme | Chemicals", score=0.81),
    ]


class TestTable:

    @pytest.mark.parametrize("language,expected", [
        (Language.ENGLISH, Language.ENGLISH),
        (Language.THAI, Language.THAI),
        (Language.MIXED, Language.THAI),
        (None, Language.THAI),
    ])
    def test_display_language(self, language, expected):
        assert display_language(language) == expected

    def test_english_table(self, results):
        lines = format_results_table(results, Language.ENGLISH).splitlines()

        assert lines[0] == "| " + " | ".join(TABLE_HEADERS[Language.ENGLISH]) + " |"
        assert lines[1] == "|---|---|---|---|---|---|---|---|"
        assert lines[2] == (
            "| 1 | RM000123 | Hydra Boost HA | Sodium Hyaluronate | Bloomage | 1,250.50 | ✅ In stock | 0.93 |"
        )
        assert lines[3] == "| 2 | RM000888 | Glycerin 99 | - | Acme \\| Chemicals | - | 📚 FDA only | 0.81 |"

    def test_thai_headers_and_badges(self, results):
        table = format_results_table(results)

        assert "รหัส" in table.splitlines()[0]
        assert "✅ มีในสต็อก" in table
        assert "📚 FDA เท่านั้น" in table

    def test_cost_text_is_shown_as_stored(self):
        result = make_result("RM000001", cost=12.0, cost_text="12 THB/kg")

        assert "| 12 THB/kg |" in format_results_table([result], Language.ENGLISH)


class TestSearchResults:

    @pytest.fixture
    def router(self):
        return CollectionRouter()

    @pytest.fixture
    def classifier(self):
        return QueryClassifier()

    def test_english_answer(self, results, router, classifier):
        routing = router.route("moisturizing serum")
        classification = classifier.classify("moisturizing serum")

        text = format_search_results(results, routing, classification, compute_stats(results))

        assert text.startswith('Found 2 materials for "moisturizing serum"')
        assert "Search scope: in-stock inventory, FDA catalog" in text
        assert "✅ Found 1 in stock" in text

    def test_thai_answer_without_context(self, results, router, classifier):
        query = "หาสารที่ช่วยความชุ่มชื้น"
        routing = router.route(query)

        text = format_search_results(results, routing, classifier.classify(query), compute_stats(results),
                                     include_availability_context=False)

        assert text.startswith(f'พบวัตถุดิบ 2 รายการสำหรับ "{query}"')
        assert "ขอบเขตการค้นหา:" in text
        assert "รายการในสต็อก" not in text

    def test_empty_results(self, router, classifier):
        routing = router.route("in stock sunscreen")

        text = format_search_results([], routing, classifier.classify("in stock sunscreen"), compute_stats([]))

        assert "FDA" in text.splitlines()[0]
        assert "Search scope: in-stock inventory" in text
        assert "|" not in text

    def test_scope_lists_routed_collections(self, router):
        routing = router.route("anything", explicit_collection="all_fda")

        assert format_scope(routing, Language.ENGLISH).startswith("Search scope: FDA catalog (")
        assert format_scope(routing).startswith("ขอบเขตการค้นหา: ฐานข้อมูล FDA (")


class TestMessages:

    def test_validation_error(self):
        assert format_error_message("Query must not be empty", Language.ENGLISH, "validation_error") == (
            "Invalid search request: Query must not be empty"
        )

    def test_other_errors(self):
        assert format_error_message("index unreachable", Language.ENGLISH, "search_unavailable") == (
            "Search failed: index unreachable"
        )
        assert format_error_message("index unreachable").startswith("เกิดข้อผิดพลาดในการค้นหา")

    def test_available(self, results):
        text = format_availability("RM000123", True, results[0], [], Language.ENGLISH)

        assert text.startswith("✅ Hydra Boost HA (RM000123) is in stock")
        assert "| 1 | RM000123 |" in text

    def test_not_available_with_alternatives(self, results):
        text = format_availability("Glycerin", False, None, [results[1]], Language.ENGLISH)

        assert text.startswith('❌ "Glycerin" is not in stock')
        assert "Alternatives in the FDA catalog:" in text
        assert "RM000888" in text

    def test_not_available_thai(self):
        text = format_availability("กลีเซอรีน", False, None, [])

        assert text == '❌ ไม่พบ "กลีเซอรีน" ในสต็อก'
