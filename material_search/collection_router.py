"""
Collection routing between the in-stock and all-FDA catalogs.

The router decides which logical collections (and vector namespaces) a query
is searched in:
- Explicit caller override always wins (confidence 1.0)
- Stock-intent keywords ("in stock", "มีในสต็อก") -> in_stock only
- Catalog-breadth keywords ("all", "FDA", "ทั้งหมด") -> all_fda only
- Otherwise both collections, in-stock results prioritized
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from loguru import logger

from material_search.models import (
    Availability,
    CollectionScope,
    CollectionType,
    Language,
    RoutingDecision,
    SearchMode,
    SearchStats,
    UnifiedSearchResult,
)
from material_search.utils import sanitize_for_logging


@dataclass
class RoutingKeywords:
    """Keyword tables for collection routing."""

    IN_STOCK_KEYWORDS = [
        'in stock', 'in-stock', 'available now', 'available', 'can buy',
        'ready to order', 'inventory', 'stock', 'real stock',
        'มีในสต็อก', 'ในสต็อก', 'สต็อก', 'สต๊อก', 'มีอยู่', 'ของที่มี',
        'ซื้อได้', 'สั่งได้', 'พร้อมส่ง', 'มีของ',
    ]

    ALL_FDA_KEYWORDS = [
        'all', 'all ingredients', 'any ingredient', 'fda', 'registered',
        'approved', 'explore', 'search all', 'entire catalog', 'catalog',
        'ทั้งหมด', 'วัตถุดิบทั้งหมด', 'ทุกวัตถุดิบ', 'หาทั้งหมด', 'ค้นหาทั้งหมด',
        'ขึ้นทะเบียน',
    ]


class CollectionRouter:
    """Routes queries to the in-stock collection, the FDA catalog or both."""

    DEFAULT_CONFIDENCE = 0.7
    KEYWORD_CONFIDENCE = 0.9

    def __init__(self, keywords: Optional[RoutingKeywords] = None):
        self.keywords = keywords or RoutingKeywords()
        self._stock_regexes = [self._keyword_regex(k) for k in self.keywords.IN_STOCK_KEYWORDS]
        self._fda_regexes = [self._keyword_regex(k) for k in self.keywords.ALL_FDA_KEYWORDS]

    @staticmethod
    def _keyword_regex(keyword: str):
        # English keywords match whole words only ("all" must not match "allantoin")
        if re.search(r'[A-Za-z]', keyword):
            return keyword, re.compile(
                r'(?<![A-Za-z])' + re.escape(keyword) + r'(?![A-Za-z])', re.IGNORECASE
            )
        return keyword, re.compile(re.escape(keyword))

    @staticmethod
    def _matches(query: str, regexes) -> List[str]:
        return [keyword for keyword, regex in regexes if regex.search(query)]

    def route(self, query: str,
              explicit_collection: Optional[Union[CollectionScope, str]] = None) -> RoutingDecision:
        """
        Decide which collections to search.

        Args:
            query: Free-text query
            explicit_collection: 'in_stock', 'all_fda' or 'both' to bypass detection

        Returns:
            RoutingDecision with collections, mode, reasoning and confidence
        """
        if explicit_collection is not None:
            decision = self._explicit_decision(CollectionScope(explicit_collection))
        else:
            decision = self._detect(query or "")

        logger.debug(
            "Collection routing decided",
            query=sanitize_for_logging(query or ""),
            collections=[c.value for c in decision.collections],
            search_mode=decision.search_mode.value,
            confidence=decision.confidence
        )
        return decision

    def _explicit_decision(self, scope: CollectionScope) -> RoutingDecision:
        if scope == CollectionScope.IN_STOCK:
            collections, mode = [CollectionType.IN_STOCK], SearchMode.STOCK_ONLY
        elif scope == CollectionScope.ALL_FDA:
            collections, mode = [CollectionType.ALL_FDA], SearchMode.FDA_ONLY
        else:
            collections, mode = [CollectionType.IN_STOCK, CollectionType.ALL_FDA], SearchMode.UNIFIED

        return RoutingDecision(
            collections=collections,
            search_mode=mode,
            reasoning="explicit override",
            confidence=1.0,
        )

    def _detect(self, query: str) -> RoutingDecision:
        stock_hits = self._matches(query, self._stock_regexes)
        if stock_hits:
            return RoutingDecision(
                collections=[CollectionType.IN_STOCK],
                search_mode=SearchMode.STOCK_ONLY,
                reasoning=f"Stock-intent keywords detected: {', '.join(stock_hits)}",
                confidence=self.KEYWORD_CONFIDENCE,
            )

        fda_hits = self._matches(query, self._fda_regexes)
        if fda_hits:
            return RoutingDecision(
                collections=[CollectionType.ALL_FDA],
                search_mode=SearchMode.FDA_ONLY,
                reasoning=f"Catalog-breadth keywords detected: {', '.join(fda_hits)}",
                confidence=self.KEYWORD_CONFIDENCE,
            )

        return RoutingDecision(
            collections=[CollectionType.IN_STOCK, CollectionType.ALL_FDA],
            search_mode=SearchMode.PRIORITIZE_STOCK,
            reasoning="No collection intent detected; searching both with in-stock materials prioritized",
            confidence=self.DEFAULT_CONFIDENCE,
        )


def compute_stats(results: Iterable[UnifiedSearchResult]) -> SearchStats:
    """Count results by availability."""
    results = list(results)
    in_stock = sum(1 for r in results if r.availability == Availability.IN_STOCK)
    fda_only = len(results) - in_stock
    percentage = round(in_stock / len(results) * 100, 1) if results else 0.0
    return SearchStats(
        total=len(results),
        in_stock=in_stock,
        fda_only=fda_only,
        in_stock_percentage=percentage,
    )


def availability_context(routing: RoutingDecision, stats: SearchStats,
                         language: Language = Language.THAI) -> str:
    """Summary lines telling the reader where results came from."""
    english = language == Language.ENGLISH
    lines = []

    if CollectionType.IN_STOCK in routing.collections:
        if english:
            lines.append(f"✅ Found {stats.in_stock} in stock")
        else:
            lines.append(f"✅ พบ {stats.in_stock} รายการในสต็อก")

    if CollectionType.ALL_FDA in routing.collections:
        if english:
            lines.append(f"📚 Found {stats.fda_only} in the FDA catalog only")
        else:
            lines.append(f"📚 พบ {stats.fda_only} รายการในฐานข้อมูล FDA")

    if routing.search_mode == SearchMode.PRIORITIZE_STOCK and stats.total:
        if english:
            lines.append("In-stock materials are listed first when scores are close")
        else:
            lines.append("วัตถุดิบที่มีในสต็อกจะแสดงก่อนเมื่อคะแนนใกล้เคียงกัน")

    return "\n".join(lines)


def not_found_message(routing: RoutingDecision, language: Language = Language.THAI) -> str:
    """Localized message for an empty result set."""
    english = language == Language.ENGLISH
    if routing.search_mode == SearchMode.STOCK_ONLY:
        if english:
            return ("No matching materials are in stock right now, "
                    "but you can search the full FDA catalog.")
        return "ไม่พบวัตถุดิบที่ต้องการในสต็อกปัจจุบัน แต่สามารถค้นหาในฐานข้อมูล FDA ทั้งหมดได้"

    if english:
        return "No matching materials found."
    return "ไม่พบวัตถุดิบที่ต้องการ"
