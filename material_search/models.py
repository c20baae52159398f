"""
Pydantic data models for the raw materials search service.

This module defines the canonical material document, the tagged source record
shapes it is normalized from, the per-query classification and routing
records, search options/results and the request/response envelopes used by
callers.
"""

import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now():
    """Factory function to get current UTC datetime."""
    return datetime.now(timezone.utc)


# Enums for controlled vocabulary
class QueryType(str, Enum):
    """Query type assigned by the classifier."""
    EXACT_CODE = "exact_code"
    NAME_SEARCH = "name_search"
    PROPERTY_SEARCH = "property_search"
    SUPPLIER_SEARCH = "supplier_search"
    GENERIC = "generic"


class SearchStrategy(str, Enum):
    """Suggested search strategy for a classified query."""
    EXACT_MATCH = "exact_match"
    FUZZY_MATCH = "fuzzy_match"
    SEMANTIC_SEARCH = "semantic_search"
    HYBRID = "hybrid"


class Language(str, Enum):
    """Dominant language of a query."""
    THAI = "thai"
    ENGLISH = "english"
    MIXED = "mixed"


class CollectionType(str, Enum):
    """Logical collection; the value doubles as the vector namespace."""
    IN_STOCK = "in_stock"
    ALL_FDA = "all_fda"


class CollectionScope(str, Enum):
    """Collection selection accepted from callers."""
    IN_STOCK = "in_stock"
    ALL_FDA = "all_fda"
    BOTH = "both"


class SearchMode(str, Enum):
    """Search mode label attached to a routing decision."""
    STOCK_ONLY = "stock_only"
    FDA_ONLY = "fda_only"
    UNIFIED = "unified"
    PRIORITIZE_STOCK = "prioritize_stock"


class MatchType(str, Enum):
    """How a result was found."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    SEMANTIC = "semantic"
    METADATA = "metadata"
    HYBRID = "hybrid"


class Availability(str, Enum):
    """Availability tag derived from the source collection."""
    IN_STOCK = "in_stock"
    FDA_ONLY = "fda_only"


class SourceStore(str, Enum):
    """Backing store a result came from."""
    MONGODB = "mongodb"
    PINECONE = "pinecone"


class ChunkType(str, Enum):
    """Chunk types written to vector metadata at indexing time."""
    PRIMARY_IDENTIFIER = "primary_identifier"
    CODE_EXACT_MATCH = "code_exact_match"
    TECHNICAL_SPECS = "technical_specs"
    COMMERCIAL_INFO = "commercial_info"
    BENEFITS = "benefits"
    USE_CASES = "use_cases"
    DETAILS = "details"
    COMBINED_CONTEXT = "combined_context"
    THAI_OPTIMIZED = "thai_optimized"


COLLECTION_AVAILABILITY: Dict[CollectionType, Availability] = {
    CollectionType.IN_STOCK: Availability.IN_STOCK,
    CollectionType.ALL_FDA: Availability.FDA_ONLY,
}

_LIST_SPLIT_PATTERN = re.compile(r'[,;\n•]+')
_COST_PATTERN = re.compile(r'-?\d+(?:\.\d+)?')


def normalize_code(code: Optional[str]) -> str:
    """Uppercase a material code and drop separators (RM-000123 -> RM000123)."""
    if not code:
        return ""
    return re.sub(r'[\s_-]', '', str(code)).upper()


def parse_text_list(value: Any) -> List[str]:
    """
    Parse a multi-valued text field into a list of strings.

    Accepts lists, JSON-encoded arrays and comma/semicolon/newline
    separated strings.
    """
    if value is None:
        return []

    if isinstance(value, (list, tuple, set)):
        items = []
        for item in value:
            items.extend(parse_text_list(item))
        return items

    text = str(value).strip()
    if not text:
        return []

    if text.startswith('['):
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = None
        if isinstance(decoded, list):
            return parse_text_list(decoded)

    items = []
    for part in _LIST_SPLIT_PATTERN.split(text):
        part = part.strip().strip('"\'').strip()
        if part and part not in items:
            items.append(part)
    return items


def parse_cost(value: Any) -> Optional[float]:
    """Parse a cost value such as 1250, "1,250.50" or "฿1,250.50/kg"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    match = _COST_PATTERN.search(str(value).replace(',', ''))
    if not match:
        return None
    return float(match.group())


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


# Canonical material document
class MaterialDocument(BaseModel):
    """A raw material catalog entry in canonical form."""
    material_code: str = Field(..., description="Unique material code, e.g. RM000123")
    trade_name: Optional[str] = Field(None, description="Commercial trade name")
    inci_name: Optional[str] = Field(None, description="INCI or chemical name")
    supplier: Optional[str] = Field(None, description="Supplier name")
    company_name: Optional[str] = Field(None, description="Manufacturer or company name")
    cost: Optional[float] = Field(None, description="Cost per unit, parsed")
    cost_text: Optional[str] = Field(None, description="Cost as stored in the source")
    benefits: List[str] = Field(default_factory=list, description="Benefit tags")
    use_cases: List[str] = Field(default_factory=list, description="Use-case tags")
    function: Optional[str] = Field(None, description="Cosmetic function")
    details: Optional[str] = Field(None, description="Free-text description")
    category: Optional[str] = Field(None, description="Material category")
    source_collection: CollectionType = Field(..., description="Collection the document was read from")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "material_code": "RM000123",
                "trade_name": "Hydra Boost HA",
                "inci_name": "Sodium Hyaluronate",
                "supplier": "Bloomage",
                "cost": 1250.5,
                "benefits": ["moisturizing", "plumping"],
                "source_collection": "in_stock"
            }
        }

    @property
    def availability(self) -> Availability:
        return COLLECTION_AVAILABILITY[self.source_collection]

    @property
    def key(self) -> str:
        """Merge key used to deduplicate results across strategies."""
        return normalize_code(self.material_code)


# Tagged source records
class StockMaterialRecord(BaseModel):
    """Document shape of the in-stock collection."""
    rm_code: str
    trade_name: Optional[str] = None
    inci_name: Optional[str] = None
    supplier: Optional[str] = None
    company_name: Optional[str] = None
    rm_cost: Any = None
    benefits: Any = None
    usecase: Any = None
    function: Optional[str] = None
    details: Optional[str] = None
    category: Optional[str] = None
    created_at: Any = Field(None, alias="createdAt")
    updated_at: Any = Field(None, alias="updatedAt")

    class Config:
        extra = "ignore"
        populate_by_name = True

    @field_validator("rm_code", mode="before")
    @classmethod
    def coerce_code(cls, value):
        return "" if value is None else str(value)

    def to_material(self, collection: CollectionType = CollectionType.IN_STOCK) -> MaterialDocument:
        return MaterialDocument(
            material_code=self.rm_code.strip(),
            trade_name=_clean_text(self.trade_name),
            inci_name=_clean_text(self.inci_name),
            supplier=_clean_text(self.supplier),
            company_name=_clean_text(self.company_name),
            cost=parse_cost(self.rm_cost),
            cost_text=_clean_text(self.rm_cost),
            benefits=parse_text_list(self.benefits),
            use_cases=parse_text_list(self.usecase),
            function=_clean_text(self.function),
            details=_clean_text(self.details),
            category=_clean_text(self.category),
            source_collection=collection,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )


class FdaMaterialRecord(BaseModel):
    """Document shape of the FDA console collection."""
    rm_code: str
    trade_name: Optional[str] = None
    inci_name: Optional[str] = Field(None, alias="INCI_name")
    supplier: Optional[str] = None
    company_name: Optional[str] = None
    rm_cost: Any = None
    function: Any = Field(None, alias="Function")
    benefits: Any = None
    benefits_cached: Any = None
    usecase: Any = None
    usecase_cached: Any = None
    description: Optional[str] = Field(None, alias="Chem_IUPAC_Name_Description")
    category: Optional[str] = None
    created_at: Any = Field(None, alias="createdAt")
    updated_at: Any = Field(None, alias="updatedAt")

    class Config:
        extra = "ignore"
        populate_by_name = True

    @field_validator("rm_code", mode="before")
    @classmethod
    def coerce_code(cls, value):
        return "" if value is None else str(value)

    def to_material(self, collection: CollectionType = CollectionType.ALL_FDA) -> MaterialDocument:
        function = parse_text_list(self.function)
        return MaterialDocument(
            material_code=self.rm_code.strip(),
            trade_name=_clean_text(self.trade_name),
            inci_name=_clean_text(self.inci_name),
            supplier=_clean_text(self.supplier),
            company_name=_clean_text(self.company_name),
            cost=parse_cost(self.rm_cost),
            cost_text=_clean_text(self.rm_cost),
            benefits=parse_text_list(self.benefits) or parse_text_list(self.benefits_cached),
            use_cases=parse_text_list(self.usecase) or parse_text_list(self.usecase_cached),
            function=", ".join(function) if function else None,
            details=_clean_text(self.description),
            category=_clean_text(self.category),
            source_collection=collection,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )


def normalize_material(raw: Dict[str, Any], collection: CollectionType) -> MaterialDocument:
    """
    Map a raw document (either source shape) to a MaterialDocument.

    The FDA console shape is recognized by its capitalized INCI/Function
    fields; vector metadata and in-stock documents use the stock shape.
    """
    if "INCI_name" in raw or "Function" in raw or "Chem_IUPAC_Name_Description" in raw:
        record = FdaMaterialRecord.model_validate(raw)
    else:
        record = StockMaterialRecord.model_validate(raw)
    return record.to_material(collection)


# Classification and routing
class CodeRange(BaseModel):
    """Inclusive material code range, e.g. RM000100-RM000200."""
    start: str
    end: str


class ExtractedEntities(BaseModel):
    """Entities extracted from query text."""
    codes: List[str] = Field(default_factory=list)
    names: List[str] = Field(default_factory=list)
    properties: List[str] = Field(default_factory=list)
    suppliers: List[str] = Field(default_factory=list)
    code_range: Optional[CodeRange] = None


class ClassificationResult(BaseModel):
    """Per-query classification; never persisted."""
    query: str
    query_type: QueryType
    confidence: float = Field(..., ge=0.0, le=1.0)
    detected_patterns: List[str] = Field(default_factory=list)
    entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    search_strategy: SearchStrategy
    language: Language
    expanded_queries: List[str] = Field(default_factory=list)
    is_material_query: bool = False
    reasoning: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "query": "RM000123",
                "query_type": "exact_code",
                "confidence": 0.95,
                "detected_patterns": ["rm_code"],
                "entities": {"codes": ["RM000123"]},
                "search_strategy": "exact_match",
                "language": "english",
                "expanded_queries": ["RM000123", "RM-000123"]
            }
        }


class RoutingDecision(BaseModel):
    """Which collections to search and why."""
    collections: List[CollectionType]
    search_mode: SearchMode
    reasoning: str
    confidence: float = Field(..., ge=0.0, le=1.0)

    @property
    def searches_both(self) -> bool:
        return len(set(self.collections)) > 1


# Search options and results
class SearchFilters(BaseModel):
    """Structured post-retrieval filters."""
    benefit: Optional[str] = Field(None, description="Required benefit tag (substring match)")
    supplier: Optional[str] = Field(None, description="Required supplier (substring match)")
    max_cost: Optional[float] = Field(None, ge=0.0, description="Cost ceiling per unit")

    def is_empty(self) -> bool:
        return not (self.benefit or self.supplier or self.max_cost is not None)


class SearchOptions(BaseModel):
    """Options accepted by the unified search."""
    collection: Optional[CollectionScope] = None
    top_k: int = Field(5, ge=0, le=100)
    similarity_threshold: float = Field(0.5, ge=0.0, le=1.0)
    enable_exact_match: bool = True
    enable_fuzzy_match: bool = True
    enable_semantic_search: bool = True
    enable_metadata_filter: bool = True
    max_results: Optional[int] = Field(None, ge=0, le=100)
    min_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    filter_by: Optional[SearchFilters] = None
    include_availability_context: bool = True
    prioritize_stock: Optional[bool] = None
    timeout_seconds: Optional[float] = Field(None, gt=0.0)
    exclude_codes: List[str] = Field(default_factory=list)

    @property
    def result_limit(self) -> int:
        if self.max_results is None:
            return self.top_k
        return min(self.top_k, self.max_results)


class UnifiedSearchResult(BaseModel):
    """A single ranked match."""
    document: MaterialDocument
    score: float = Field(..., ge=0.0, le=1.0)
    match_type: MatchType
    confidence: float = Field(..., ge=0.0, le=1.0)
    matched_fields: List[str] = Field(default_factory=list)
    source_store: SourceStore
    source_collection: CollectionType
    availability: Availability
    is_prioritized: bool = False

    @property
    def material_code(self) -> str:
        return self.document.material_code


class SearchStats(BaseModel):
    """Result counts split by availability."""
    total: int = 0
    in_stock: int = 0
    fda_only: int = 0
    in_stock_percentage: float = 0.0


class SearchRequest(BaseModel):
    """Search request as sent by chat routes and tool handlers."""
    query: str = Field("", description="Free-text query, Thai or English")
    collection: Optional[CollectionScope] = None
    top_k: Optional[int] = Field(None, alias="topK", ge=0, le=100)
    similarity_threshold: Optional[float] = Field(None, alias="similarityThreshold", ge=0.0, le=1.0)
    enable_exact_match: bool = True
    enable_fuzzy_match: bool = True
    enable_semantic_search: bool = True
    enable_metadata_filter: bool = True
    max_results: Optional[int] = Field(None, ge=0, le=100)
    min_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    filter_by: Optional[SearchFilters] = None
    include_availability_context: bool = True
    prioritize_stock: Optional[bool] = None
    timeout_seconds: Optional[float] = Field(None, gt=0.0)
    exclude_codes: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "query": "หาสารที่ช่วยความชุ่มชื้น 5 ตัว",
                "collection": "both",
                "topK": 5,
                "filter_by": {"max_cost": 2000}
            }
        }

    def to_options(self, default_top_k: int = 5, default_threshold: float = 0.5) -> SearchOptions:
        return SearchOptions(
            collection=self.collection,
            top_k=default_top_k if self.top_k is None else self.top_k,
            similarity_threshold=(
                default_threshold if self.similarity_threshold is None else self.similarity_threshold
            ),
            enable_exact_match=self.enable_exact_match,
            enable_fuzzy_match=self.enable_fuzzy_match,
            enable_semantic_search=self.enable_semantic_search,
            enable_metadata_filter=self.enable_metadata_filter,
            max_results=self.max_results,
            min_score=self.min_score,
            filter_by=self.filter_by,
            include_availability_context=self.include_availability_context,
            prioritize_stock=self.prioritize_stock,
            timeout_seconds=self.timeout_seconds,
            exclude_codes=self.exclude_codes,
        )


class SearchResponse(BaseModel):
    """Envelope returned to callers; formatted is always populated."""
    success: bool
    results: List[UnifiedSearchResult] = Field(default_factory=list)
    formatted: str
    query: str
    total_results: int = Field(0, alias="totalResults")
    routing: Optional[RoutingDecision] = None
    classification: Optional[ClassificationResult] = None
    stats: Optional[SearchStats] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    warning: Optional[str] = None

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def sync_total(self):
        if self.results and not self.total_results:
            self.total_results = len(self.results)
        return self


class AvailabilityCheck(BaseModel):
    """Result of checking whether a material can be ordered now."""
    query: str
    available: bool
    in_stock_match: Optional[UnifiedSearchResult] = None
    alternatives: List[UnifiedSearchResult] = Field(default_factory=list)
    formatted: str


class CollectionStats(BaseModel):
    """Document and vector counts for one logical collection."""
    collection: CollectionType
    document_count: Optional[int] = None
    vector_count: Optional[int] = None


# Indexing-time records
class Chunk(BaseModel):
    """An independently embeddable piece of a material document."""
    id: str
    text: str
    chunk_type: ChunkType
    field_source: List[str] = Field(default_factory=list)
    priority: float = Field(..., ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def character_count(self) -> int:
        return len(self.text)


# API models
class ErrorResponse(BaseModel):
    """Error response for API endpoints."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=utc_now)
    request_id: Optional[str] = Field(None, description="Request ID for tracking")


class ClassifyResponse(BaseModel):
    """Classification and routing for a query without running the search."""
    classification: ClassificationResult
    routing: RoutingDecision


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or degraded")
    components: Dict[str, str] = Field(default_factory=dict)
    embedding_provider: Optional[str] = None
    embedding_dimensions: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)
