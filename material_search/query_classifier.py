"""
Rule-based query classification for raw material searches.

Classification is a pure function of the query text and the static pattern
tables in ClassificationPatterns:

QUERY TYPES (checked in order):
- EXACT_CODE: material codes such as RM000123, RC00A123, RDABC123
- NAME_SEARCH: quoted phrases, trade-name markers, known ingredient names
- PROPERTY_SEARCH: bilingual benefit vocabulary (moisturizing, ชุ่มชื้น, ...)
- SUPPLIER_SEARCH: supplier/manufacturer keywords
- GENERIC: anything else, low confidence

Usage:
    classifier = QueryClassifier()
    result = classifier.classify("หาสารที่ช่วยความชุ่มชื้น 5 ตัว")
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from loguru import logger

from material_search.models import (
    ClassificationResult,
    CodeRange,
    ExtractedEntities,
    Language,
    QueryType,
    SearchStrategy,
    normalize_code,
)
from material_search.utils import sanitize_for_logging


# ASCII-only word boundaries; Thai letters count as \w in Python regexes
_NB = r'(?<![A-Za-z0-9])'
_NA = r'(?![A-Za-z0-9])'


@dataclass
class ClassificationPatterns:
    """Pattern and keyword tables for query classification."""

    CODE_PATTERNS = [
        ("rm_code", _NB + r'(RM)[-_]?(\d{6})' + _NA),
        ("rc_code", _NB + r'(RC)[-_]?((?=[A-Z]*\d)[A-Z0-9]{6,})' + _NA),
        ("rd_code", _NB + r'(RD)[-_]?([A-Z]{2,}\d{3,})' + _NA),
    ]

    CODE_RANGE_PATTERN = (
        _NB + r'(RM[-_]?\d{6})\s*(?:-|–|~|to|ถึง)\s*(RM[-_]?\d{6})' + _NA
    )

    NAME_PATTERNS = [
        ("quoted_name", r'["“”]([^"“”]{2,80})["“”]'),
        ("trademark", r'([A-Za-z][\w\- ]{1,60}?)\s*[®™]'),
        ("capitalized_phrase", r'(?<![\w])([A-Z][a-zA-Z0-9]+(?:\s+[A-Z][a-zA-Z0-9]+)+)'),
    ]

    KNOWN_INGREDIENTS = [
        'hyaluronic acid', 'sodium hyaluronate', 'niacinamide', 'retinol',
        'ceramide', 'collagen', 'vitamin c', 'vitamin e', 'ascorbic acid',
        'tocopherol', 'panthenol', 'allantoin', 'squalane', 'salicylic acid',
        'glycolic acid', 'centella asiatica', 'arbutin', 'kojic acid',
        'bakuchiol', 'peptide', 'adenosine', 'tranexamic acid',
    ]

    # Leading words that are not part of a product name
    NAME_STOPWORDS = {
        'find', 'show', 'search', 'list', 'get', 'what', 'which', 'is', 'are',
        'the', 'a', 'an', 'all', 'any', 'in', 'stock', 'fda', 'please', 'give',
        'me', 'i', 'need', 'want', 'looking', 'for', 'do', 'we', 'have',
    }

    # Canonical benefit -> surface terms (English and Thai)
    BENEFIT_KEYWORDS = {
        'moisturizing': [
            'moisturizing', 'moisturising', 'moisturizer', 'moisturiser',
            'moisture', 'hydrating', 'hydration', 'humectant',
            'ให้ความชุ่มชื้น', 'ความชุ่มชื้น', 'ชุ่มชื้น',
        ],
        'anti-aging': [
            'anti-aging', 'anti aging', 'antiaging', 'anti-wrinkle', 'wrinkle',
            'ต้านริ้วรอย', 'ลดริ้วรอย', 'ริ้วรอย', 'ชะลอวัย',
        ],
        'brightening': [
            'brightening', 'whitening', 'brighten', 'lightening', 'radiance',
            'กระจ่างใส', 'ผิวขาว', 'ไวท์เทนนิ่ง',
        ],
        'soothing': [
            'soothing', 'calming', 'anti-inflammatory',
            'ปลอบประโลม', 'ลดการระคายเคือง', 'ลดอักเสบ',
        ],
        'anti-acne': ['anti-acne', 'acne', 'blemish', 'ลดสิว', 'สิว'],
        'firming': ['firming', 'elasticity', 'ยกกระชับ', 'กระชับ'],
        'smoothing': ['smoothing', 'เรียบเนียน'],
        'sun protection': ['sunscreen', 'sun protection', 'uv', 'spf', 'กันแดด'],
        'antioxidant': ['antioxidant', 'ต้านอนุมูลอิสระ'],
        'nourishing': ['nourishing', 'บำรุง'],
        'oil control': ['oil control', 'sebum', 'ควบคุมความมัน'],
        'exfoliating': ['exfoliating', 'exfoliation', 'peeling', 'ผลัดเซลล์ผิว'],
    }

    SUPPLIER_KEYWORDS = [
        'supplier', 'suppliers', 'manufacturer', 'manufacturers', 'vendor',
        'distributor', 'made by', 'ซัพพลายเออร์', 'ผู้ผลิต', 'ผู้จำหน่าย', 'บริษัท',
    ]

    SUPPLIER_NAME_PATTERN = (
        r'(?<![A-Za-z])(?i:suppliers?|manufacturers?|vendors?|distributors?|made by|from'
        r'|ซัพพลายเออร์|ผู้ผลิต|ผู้จำหน่าย|บริษัท)'
        r'\s*[:：]?\s*([A-Z][A-Za-z0-9&.\-]*(?:\s+[A-Z][A-Za-z0-9&.\-]*)*)'
    )

    # Secondary patterns: labels only, they raise confidence and mark material queries
    MATERIAL_PATTERNS = [
        ("thai_question", r'คืออะไร'),
        ("code_inquiry", r'รหัส(?:สาร|วัตถุดิบ)'),
        ("name_inquiry", r'ชื่อการค้า|' + _NB + r'trade\s*names?' + _NA),
        ("inci_inquiry", _NB + r'inci' + _NA),
        ("thai_material", r'วัตถุดิบ|สารสกัด|สาร'),
        ("eng_material", _NB + r'(?:raw\s+materials?|ingredients?|materials?|extracts?|actives?)' + _NA),
        ("formulation", r'สูตร|' + _NB + r'formula(?:tion)?s?' + _NA),
        ("cost", r'ราคา|' + _NB + r'(?:cost|price)s?' + _NA),
        ("vitamin", r'วิตามิน|' + _NB + r'vitamin' + _NA),
    ]

    # Thai -> English substitutions for query expansion
    KEYWORD_EXPANSION = {
        'วัตถุดิบ': 'raw material',
        'สารสกัด': 'extract',
        'ซัพพลายเออร์': 'supplier',
        'ผู้ผลิต': 'manufacturer',
        'ประโยชน์': 'benefit',
        'ราคา': 'price',
        'สูตร': 'formulation',
        'ความชุ่มชื้น': 'moisturizing',
        'ต้านริ้วรอย': 'anti-aging',
        'กระจ่างใส': 'brightening',
        'ผิว': 'skin',
        'สาร': 'ingredient',
    }


class QueryClassifier:
    """Classifies raw material queries with static pattern tables."""

    MAX_EXPANSIONS = 5
    MAX_QUERY_CHARS = 5000

    TYPE_BASE_CONFIDENCE = {
        QueryType.EXACT_CODE: 0.95,
        QueryType.NAME_SEARCH: 0.8,
        QueryType.PROPERTY_SEARCH: 0.75,
        QueryType.SUPPLIER_SEARCH: 0.7,
        QueryType.GENERIC: 0.2,
    }

    TYPE_STRATEGY = {
        QueryType.EXACT_CODE: SearchStrategy.EXACT_MATCH,
        QueryType.NAME_SEARCH: SearchStrategy.FUZZY_MATCH,
        QueryType.PROPERTY_SEARCH: SearchStrategy.SEMANTIC_SEARCH,
        QueryType.SUPPLIER_SEARCH: SearchStrategy.HYBRID,
        QueryType.GENERIC: SearchStrategy.SEMANTIC_SEARCH,
    }

    def __init__(self, patterns: Optional[ClassificationPatterns] = None):
        self.patterns = patterns or ClassificationPatterns()

        self._code_regexes = [
            (label, re.compile(pattern, re.IGNORECASE))
            for label, pattern in self.patterns.CODE_PATTERNS
        ]
        self._range_regex = re.compile(self.patterns.CODE_RANGE_PATTERN, re.IGNORECASE)
        self._name_regexes = [
            (label, re.compile(pattern)) for label, pattern in self.patterns.NAME_PATTERNS
        ]
        self._material_regexes = [
            (label, re.compile(pattern, re.IGNORECASE))
            for label, pattern in self.patterns.MATERIAL_PATTERNS
        ]
        self._supplier_name_regex = re.compile(self.patterns.SUPPLIER_NAME_PATTERN)
        self._benefit_terms = self._build_term_table(self.patterns.BENEFIT_KEYWORDS)

    @staticmethod
    def _term_regex(term: str):
        if re.search(r'[A-Za-z]', term):
            return re.compile(_NB + re.escape(term) + _NA, re.IGNORECASE)
        return re.compile(re.escape(term))

    def _build_term_table(self, table: Dict[str, List[str]]) -> List[Tuple[str, str, "re.Pattern"]]:
        # Longest terms first so the most specific surface form is reported
        entries = [
            (canonical, term, self._term_regex(term))
            for canonical, terms in table.items()
            for term in terms
        ]
        return sorted(entries, key=lambda entry: len(entry[1]), reverse=True)

    def detect_language(self, query: str) -> Language:
        """
        Detect the dominant language from character ranges.

        Thai characters are U+0E00..U+0E7F; ratios are taken over
        non-whitespace characters.
        """
        chars = [c for c in query if not c.isspace()]
        if not chars:
            return Language.ENGLISH
        thai = sum(1 for c in chars if '\u0e00' <= c <= '\u0e7f')
        latin = sum(1 for c in chars if c.isascii() and c.isalpha())
        thai_ratio = thai / len(chars)
        latin_ratio = latin / len(chars)

        if thai_ratio > 0.3 and latin_ratio > 0.1:
            return Language.MIXED
        if thai_ratio > 0.3:
            return Language.THAI
        return Language.ENGLISH

    def extract_code_range(self, query: str) -> Optional[CodeRange]:
        match = self._range_regex.search(query)
        if not match:
            return None
        start, end = normalize_code(match.group(1)), normalize_code(match.group(2))
        if start > end:
            start, end = end, start
        return CodeRange(start=start, end=end)

    def extract_codes(self, query: str) -> Tuple[List[str], List[str]]:
        """Return (normalized codes, pattern labels) found in the query."""
        codes: List[str] = []
        labels: List[str] = []
        for label, regex in self._code_regexes:
            for match in regex.finditer(query):
                code = normalize_code(match.group(1) + match.group(2))
                if code not in codes:
                    codes.append(code)
                if label not in labels:
                    labels.append(label)
        return codes, labels

    def extract_names(self, query: str) -> Tuple[List[str], List[str]]:
        names: List[str] = []
        labels: List[str] = []

        for label, regex in self._name_regexes:
            for match in regex.finditer(query):
                name = self._strip_name_stopwords(
                    match.group(1), allow_single=label != "capitalized_phrase"
                )
                if name and name.lower() not in (n.lower() for n in names):
                    names.append(name)
                    if label not in labels:
                        labels.append(label)

        query_lower = query.lower()
        for ingredient in self.patterns.KNOWN_INGREDIENTS:
            if re.search(_NB + re.escape(ingredient) + _NA, query_lower):
                if ingredient not in (n.lower() for n in names):
                    names.append(ingredient.title())
                if "known_ingredient" not in labels:
                    labels.append("known_ingredient")

        return names, labels

    def _strip_name_stopwords(self, phrase: str, allow_single: bool = False) -> str:
        words = phrase.strip().split()
        while words and words[0].lower() in self.patterns.NAME_STOPWORDS:
            words.pop(0)
        while words and words[-1].lower() in self.patterns.NAME_STOPWORDS:
            words.pop()
        # A single capitalized word is too weak to be treated as a product name
        if not words or (len(words) < 2 and not allow_single):
            return ""
        return " ".join(words)

    def extract_properties(self, query: str) -> List[str]:
        """Return canonical benefit names followed by the matched surface terms."""
        canonicals: List[str] = []
        surfaces: List[str] = []
        for canonical, term, regex in self._benefit_terms:
            if canonical in canonicals:
                continue
            if regex.search(query):
                canonicals.append(canonical)
                if term.lower() != canonical:
                    surfaces.append(term)
        return canonicals + [s for s in surfaces if s not in canonicals]

    def extract_suppliers(self, query: str) -> Tuple[bool, List[str]]:
        query_lower = query.lower()
        has_keyword = any(keyword in query_lower for keyword in self.patterns.SUPPLIER_KEYWORDS)
        if not has_keyword:
            return False, []

        suppliers = []
        for match in self._supplier_name_regex.finditer(query):
            name = match.group(1).strip()
            if name and name not in suppliers:
                suppliers.append(name)
        return True, suppliers

    def detect_material_patterns(self, query: str) -> List[str]:
        return [label for label, regex in self._material_regexes if regex.search(query)]

    def expand_query(self, query: str, entities: ExtractedEntities) -> List[str]:
        """
        Generate alternate phrasings, original query first, at most MAX_EXPANSIONS.
        """
        variants: List[str] = [query]

        def add(variant: str):
            variant = re.sub(r'\s+', ' ', variant).strip()
            if variant and variant not in variants:
                variants.append(variant)

        for code in entities.codes:
            prefix, rest = code[:2], code[2:]
            add(code)
            add(f"{prefix}-{rest}")

        if entities.names:
            add(re.sub(r'[^\w\s]', ' ', query))

        translated = query
        for thai in sorted(self.patterns.KEYWORD_EXPANSION, key=len, reverse=True):
            if thai in translated:
                translated = translated.replace(thai, f" {self.patterns.KEYWORD_EXPANSION[thai]} ")
        if translated != query:
            add(translated)

        for canonical in entities.properties:
            terms = self.patterns.BENEFIT_KEYWORDS.get(canonical)
            if not terms:
                continue
            synonyms = [t for t in terms if re.search(r'[A-Za-z]', t) and t != canonical][:2]
            for _, term, regex in self._benefit_terms:
                if term in terms and regex.search(query):
                    for synonym in [canonical] + synonyms:
                        add(regex.sub(synonym, query))
                    break

        return variants[:self.MAX_EXPANSIONS]

    def _calculate_confidence(self, query_type: QueryType, detected_patterns: List[str]) -> float:
        base = self.TYPE_BASE_CONFIDENCE[query_type]
        if query_type == QueryType.GENERIC:
            return base if detected_patterns else 0.1
        boost = min(max(len(detected_patterns) - 1, 0) * 0.05, 0.1)
        return round(min(base + boost, 1.0), 4)

    def _generate_reasoning(self, query_type: QueryType, entities: ExtractedEntities,
                            language: Language) -> str:
        parts = [f"Classified as {query_type.value}"]
        if entities.code_range:
            parts.append(f"Code range {entities.code_range.start}-{entities.code_range.end}")
        if entities.codes:
            parts.append(f"Codes: {', '.join(entities.codes)}")
        if entities.names:
            parts.append(f"Names: {', '.join(entities.names)}")
        if entities.properties:
            parts.append(f"Properties: {', '.join(entities.properties)}")
        if entities.suppliers:
            parts.append(f"Suppliers: {', '.join(entities.suppliers)}")
        parts.append(f"Language: {language.value}")
        return ". ".join(parts)

    def classify(self, query: str) -> ClassificationResult:
        """
        Classify a query. Never raises; unusable input becomes GENERIC.

        Args:
            query: Free-text query, Thai, English or mixed

        Returns:
            ClassificationResult with type, confidence, entities and expansions
        """
        if not isinstance(query, str):
            query = ""
        text = query.strip()[:self.MAX_QUERY_CHARS]

        if not text:
            return ClassificationResult(
                query=query,
                query_type=QueryType.GENERIC,
                confidence=0.0,
                search_strategy=SearchStrategy.SEMANTIC_SEARCH,
                language=Language.ENGLISH,
                reasoning="Empty query",
            )

        language = self.detect_language(text)
        entities = ExtractedEntities()
        detected: List[str] = []

        entities.code_range = self.extract_code_range(text)
        code_text = self._range_regex.sub(" ", text) if entities.code_range else text
        entities.codes, code_labels = self.extract_codes(code_text)
        entities.names, name_labels = self.extract_names(code_text)
        entities.properties = self.extract_properties(text)
        has_supplier_keyword, entities.suppliers = self.extract_suppliers(text)
        material_labels = self.detect_material_patterns(text)

        if entities.code_range:
            detected.append("code_range")
        detected.extend(code_labels)

        if entities.codes or entities.code_range:
            query_type = QueryType.EXACT_CODE
        elif entities.names:
            query_type = QueryType.NAME_SEARCH
            detected.extend(name_labels)
        elif entities.properties:
            query_type = QueryType.PROPERTY_SEARCH
            detected.append("benefit_keyword")
        elif has_supplier_keyword:
            query_type = QueryType.SUPPLIER_SEARCH
            detected.append("supplier_keyword")
        else:
            query_type = QueryType.GENERIC

        detected.extend(label for label in material_labels if label not in detected)

        result = ClassificationResult(
            query=query,
            query_type=query_type,
            confidence=self._calculate_confidence(query_type, detected),
            detected_patterns=detected,
            entities=entities,
            search_strategy=self.TYPE_STRATEGY[query_type],
            language=language,
            expanded_queries=self.expand_query(text, entities),
            is_material_query=query_type != QueryType.GENERIC or bool(material_labels),
            reasoning=self._generate_reasoning(query_type, entities, language),
        )

        logger.debug(
            "Query classified",
            query=sanitize_for_logging(text),
            query_type=result.query_type.value,
            confidence=result.confidence,
            language=result.language.value,
            patterns=result.detected_patterns
        )
        return result
