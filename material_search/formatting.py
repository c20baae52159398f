"""
Markdown rendering of search results for chat UIs and LLM tool calls.

The table column order (rank, code, trade name, INCI name, supplier, cost,
availability, score) is relied on by downstream consumers and must not change.
Headers and messages are Thai unless the query was detected as English.
"""

from typing import List, Optional

from material_search.collection_router import availability_context, not_found_message
from material_search.models import (
    Availability,
    ClassificationResult,
    Language,
    RoutingDecision,
    SearchStats,
    UnifiedSearchResult,
)


TABLE_HEADERS = {
    Language.ENGLISH: ["#", "Code", "Trade Name", "INCI Name", "Supplier", "Cost", "Availability", "Score"],
    Language.THAI: ["#", "รหัส", "ชื่อการค้า", "ชื่อ INCI", "ซัพพลายเออร์", "ราคา", "สถานะ", "คะแนน"],
}

AVAILABILITY_BADGES = {
    Language.ENGLISH: {Availability.IN_STOCK: "✅ In stock", Availability.FDA_ONLY: "📚 FDA only"},
    Language.THAI: {Availability.IN_STOCK: "✅ มีในสต็อก", Availability.FDA_ONLY: "📚 FDA เท่านั้น"},
}

COLLECTION_LABELS = {
    Language.ENGLISH: {"in_stock": "in-stock inventory", "all_fda": "FDA catalog"},
    Language.THAI: {"in_stock": "สต็อก", "all_fda": "ฐานข้อมูล FDA"},
}


def display_language(language: Optional[Language]) -> Language:
    """English output only for English queries; Thai and mixed queries get Thai."""
    return Language.ENGLISH if language == Language.ENGLISH else Language.THAI


def _cell(value) -> str:
    if value is None or value == "":
        return "-"
    text = str(value).replace("\n", " ").replace("|", "\\|")
    return text.strip() or "-"


def _cost(result: UnifiedSearchResult) -> str:
    document = result.document
    if document.cost_text:
        return document.cost_text
    if document.cost is not None:
        return f"{document.cost:,.2f}"
    return "-"


def format_results_table(results: List[UnifiedSearchResult],
                         language: Language = Language.THAI) -> str:
    """Render results as a markdown table."""
    language = display_language(language)
    headers = TABLE_HEADERS[language]
    badges = AVAILABILITY_BADGES[language]

    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("---" for _ in headers) + "|",
    ]
    for rank, result in enumerate(results, 1):
        document = result.document
        row = [
            str(rank),
            _cell(document.material_code),
            _cell(document.trade_name),
            _cell(document.inci_name),
            _cell(document.supplier or document.company_name),
            _cell(_cost(result)),
            badges[result.availability],
            f"{result.score:.2f}",
        ]
        lines.append("| " + " | ".join(row) + " |")
    return "\n".join(lines)


def format_scope(routing: RoutingDecision, language: Language = Language.THAI) -> str:
    language = display_language(language)
    labels = COLLECTION_LABELS[language]
    scope = ", ".join(labels[c.value] for c in routing.collections)
    if language == Language.ENGLISH:
        return f"Search scope: {scope} ({routing.reasoning})"
    return f"ขอบเขตการค้นหา: {scope} ({routing.reasoning})"


def format_search_results(results: List[UnifiedSearchResult], routing: RoutingDecision,
                          classification: ClassificationResult, stats: SearchStats,
                          include_availability_context: bool = True) -> str:
    """
    Render a complete answer: summary header, scope, table and totals.

    Args:
        results: Ranked results (may be empty)
        routing: Routing decision for the query
        classification: Classification of the query, for language and echo
        stats: Counts by availability
        include_availability_context: Append per-collection totals

    Returns:
        str: Markdown text
    """
    language = display_language(classification.language)
    query = classification.query.strip()

    if not results:
        return "\n\n".join([not_found_message(routing, language), format_scope(routing, language)])

    if language == Language.ENGLISH:
        header = f'Found {len(results)} materials for "{query}"'
    else:
        header = f'พบวัตถุดิบ {len(results)} รายการสำหรับ "{query}"'

    sections = [header, format_scope(routing, language), format_results_table(results, language)]
    if include_availability_context:
        sections.append(availability_context(routing, stats, language))
    return "\n\n".join(section for section in sections if section)


def format_error_message(message: str, language: Language = Language.THAI,
                         error_type: Optional[str] = None) -> str:
    """Human-readable error text; never a stack trace."""
    language = display_language(language)
    if error_type == "validation_error":
        if language == Language.ENGLISH:
            return f"Invalid search request: {message}"
        return f"คำค้นหาไม่ถูกต้อง: {message}"
    if language == Language.ENGLISH:
        return f"Search failed: {message}"
    return f"เกิดข้อผิดพลาดในการค้นหา: {message}"


def format_availability(query: str, available: bool, match: Optional[UnifiedSearchResult],
                        alternatives: List[UnifiedSearchResult],
                        language: Language = Language.THAI) -> str:
    """Answer an availability check, listing FDA alternatives when not in stock."""
    language = display_language(language)
    english = language == Language.ENGLISH

    if available and match is not None:
        name = match.document.trade_name or match.document.material_code
        if english:
            lines = [f"✅ {name} ({match.document.material_code}) is in stock"]
        else:
            lines = [f"✅ {name} ({match.document.material_code}) มีในสต็อก"]
        return "\n\n".join(lines + [format_results_table([match], language)])

    if english:
        lines = [f'❌ "{query}" is not in stock']
    else:
        lines = [f'❌ ไม่พบ "{query}" ในสต็อก']

    if alternatives:
        lines.append("Alternatives in the FDA catalog:" if english else "ทางเลือกจากฐานข้อมูล FDA:")
        lines.append(format_results_table(alternatives, language))
    return "\n\n".join(lines)
