"""
Unified (hybrid) search over the in-stock and FDA material collections.

This module orchestrates a single search request:

1. Validate the query and options before any I/O
2. Classify the query and route it to one or both collections
3. Run the retrieval strategies concurrently:
   - Exact match: code / trade name / INCI equality (MongoDB), score 1.0
   - Fuzzy match: case-insensitive substring match (MongoDB), score < 1.0
   - Semantic search: query embeddings against each namespace (Pinecone)
4. Merge by material code, keeping the best score ("hybrid" when strategies agree)
5. Apply structured filters, exclusions and the minimum score
6. Prioritize in-stock materials when both collections were searched
7. Sort, truncate and format

A strategy that fails or times out is skipped with a warning. The request
only fails when no strategy could run, or when the query embedding does not
fit the vector index.

Usage:
    service = build_search_service(get_config())
    response = await service.search(SearchRequest(query="RM000123"))
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from material_search.collection_router import CollectionRouter, compute_stats
from material_search.document_store import MaterialStore
from material_search.embeddings import EmbeddingService, build_embedding_service
from material_search.exceptions import (
    DimensionMismatchError,
    EmbeddingDimensionError,
    EmbeddingInitializationError,
    MaterialSearchError,
    SearchUnavailableError,
    SearchValidationError,
    StrategyUnavailableError,
)
from material_search.formatting import (
    format_availability,
    format_error_message,
    format_search_results,
)
from material_search.models import (
    Availability,
    AvailabilityCheck,
    ClassificationResult,
    CollectionScope,
    CollectionStats,
    CollectionType,
    MatchType,
    MaterialDocument,
    QueryType,
    RoutingDecision,
    SearchFilters,
    SearchMode,
    SearchOptions,
    SearchRequest,
    SearchResponse,
    SourceStore,
    UnifiedSearchResult,
    normalize_code,
    normalize_material,
)
from material_search.query_classifier import QueryClassifier
from material_search.utils import Timer, sanitize_for_logging
from material_search.vector import PineconeVectorStore


NAME_FIELDS = ["material_code", "trade_name", "inci_name"]
PROPERTY_FIELDS = ["benefits", "use_cases", "function"]

FUZZY_FIELD_WEIGHTS = {
    "material_code": 1.0,
    "trade_name": 0.9,
    "inci_name": 0.85,
    "benefits": 0.8,
    "use_cases": 0.75,
    "function": 0.75,
    "supplier": 0.7,
}

STRATEGY_CONFIDENCE = {
    MatchType.EXACT: 0.95,
    MatchType.FUZZY: 0.8,
    MatchType.SEMANTIC: 0.7,
}


@dataclass
class SearchOutcome:
    """Everything one search produced, before formatting."""
    classification: ClassificationResult
    routing: RoutingDecision
    results: List[UnifiedSearchResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    attempted: List[str] = field(default_factory=list)

    def skip(self, strategy: str, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)
        logger.warning("Search strategy skipped", strategy=strategy, reason=message)


class UnifiedSearchService:
    """
    Hybrid search across MongoDB and Pinecone.

    Built once at startup with its collaborators and shared by every
    request. Any collaborator may be None; the strategies that need it are
    then skipped with a warning.
    """

    EXACT_SCORE = 1.0
    CODE_RANGE_SCORE = 0.95
    FUZZY_SCORE_CAP = 0.95
    FUZZY_MAX_WORDS = 8
    MAX_QUERY_CHARS = 5000
    MAX_SEMANTIC_VARIANTS = 3
    SEMANTIC_TIMEOUT_SHARE = 0.8
    UNKNOWN_COST_PENALTY = 0.8
    CANDIDATE_LIMIT = 50
    AVAILABLE_SCORE = 0.8
    ALTERNATIVES_LIMIT = 5

    def __init__(self, document_store: Optional[MaterialStore] = None,
                 vector_store: Optional[PineconeVectorStore] = None,
                 embeddings: Optional[EmbeddingService] = None,
                 classifier: Optional[QueryClassifier] = None,
                 router: Optional[CollectionRouter] = None,
                 default_top_k: int = 5, similarity_threshold: float = 0.5,
                 prioritization_epsilon: float = 0.05, overfetch_factor: int = 3,
                 timeout_seconds: Optional[float] = 10.0):
        self.document_store = document_store
        self.vector_store = vector_store
        self.embeddings = embeddings
        self.classifier = classifier or QueryClassifier()
        self.router = router or CollectionRouter()
        self.default_top_k = default_top_k
        self.similarity_threshold = similarity_threshold
        self.prioritization_epsilon = prioritization_epsilon
        self.overfetch_factor = max(1, overfetch_factor)
        self.timeout_seconds = timeout_seconds

        logger.info(
            "UnifiedSearchService initialized",
            document_store=document_store is not None,
            vector_store=vector_store is not None,
            embedding_provider=embeddings.provider() if embeddings else None,
            prioritization_epsilon=prioritization_epsilon
        )

    @property
    def semantic_available(self) -> bool:
        return self.vector_store is not None and self.embeddings is not None

    # Public API

    async def unified_search(self, query: str,
                             options: Optional[SearchOptions] = None) -> List[UnifiedSearchResult]:
        """
        Search and return ranked results.

        Args:
            query: Free-text query, Thai or English
            options: Search options; defaults use the service configuration

        Returns:
            Results sorted by score descending, at most the requested limit

        Raises:
            SearchValidationError: Empty query or invalid options
            SearchUnavailableError: No strategy could run
            DimensionMismatchError: Query embedding does not fit the index
        """
        outcome = await self._execute(query, options or self.default_options())
        return outcome.results

    async def search(self, request: SearchRequest) -> SearchResponse:
        """
        Run a search and wrap it in the caller envelope.

        Errors are returned as success=False with a localized message in
        formatted; they are not raised.
        """
        query = request.query if isinstance(request.query, str) else ""
        language = self.classifier.detect_language(query)

        try:
            options = request.to_options(self.default_top_k, self.similarity_threshold)
            outcome = await self._execute(query, options)
        except (SearchValidationError, ValidationError) as e:
            return self._error_response(query, str(e), "validation_error", language)
        except (DimensionMismatchError, EmbeddingDimensionError) as e:
            logger.error("Search configuration mismatch", error=str(e))
            return self._error_response(query, str(e), "configuration_error", language)
        except SearchUnavailableError as e:
            return self._error_response(query, str(e), "search_unavailable", language)

        stats = compute_stats(outcome.results)
        formatted = format_search_results(
            outcome.results,
            outcome.routing,
            outcome.classification,
            stats,
            include_availability_context=options.include_availability_context,
        )
        return SearchResponse(
            success=True,
            results=outcome.results,
            formatted=formatted,
            query=query,
            total_results=len(outcome.results),
            routing=outcome.routing,
            classification=outcome.classification,
            stats=stats,
            warning="; ".join(outcome.warnings) or None,
        )

    async def search_in_stock(self, query: str, top_k: Optional[int] = None) -> List[UnifiedSearchResult]:
        """Search only materials currently in stock."""
        return await self.unified_search(query, self.default_options(CollectionScope.IN_STOCK, top_k))

    async def search_all_fda(self, query: str, top_k: Optional[int] = None) -> List[UnifiedSearchResult]:
        """Search the complete FDA-registered catalog."""
        return await self.unified_search(query, self.default_options(CollectionScope.ALL_FDA, top_k))

    async def check_availability(self, query: str) -> AvailabilityCheck:
        """
        Check whether a material is in stock; when it is not, suggest up to
        ALTERNATIVES_LIMIT materials from the FDA catalog.
        """
        language = self.classifier.detect_language(query or "")
        stock = await self.search_in_stock(query, top_k=1)
        match = stock[0] if stock and stock[0].score >= self.AVAILABLE_SCORE else None

        alternatives: List[UnifiedSearchResult] = []
        if match is None:
            alternatives = await self.search_all_fda(query, top_k=self.ALTERNATIVES_LIMIT)

        return AvailabilityCheck(
            query=query,
            available=match is not None,
            in_stock_match=match,
            alternatives=alternatives,
            formatted=format_availability(query, match is not None, match, alternatives, language),
        )

    async def get_collection_stats(self) -> List[CollectionStats]:
        """Document counts per collection and vector counts per namespace."""
        vector_counts: Dict[str, int] = {}
        if self.vector_store is not None:
            try:
                vector_counts = (await self.vector_store.describe_index_stats())["namespaces"]
            except MaterialSearchError as e:
                logger.warning("Vector statistics unavailable", error=str(e))

        stats = []
        for collection in CollectionType:
            document_count = None
            if self.document_store is not None:
                try:
                    document_count = await self.document_store.count_documents(collection)
                except MaterialSearchError as e:
                    logger.warning("Document count unavailable", collection=collection.value, error=str(e))
            stats.append(CollectionStats(
                collection=collection,
                document_count=document_count,
                vector_count=vector_counts.get(collection.value),
            ))
        return stats

    def default_options(self, collection: Optional[CollectionScope] = None,
                        top_k: Optional[int] = None) -> SearchOptions:
        return SearchOptions(
            collection=collection,
            top_k=self.default_top_k if top_k is None else top_k,
            similarity_threshold=self.similarity_threshold,
        )

    # Orchestration

    def _validate(self, query: str, options: SearchOptions) -> None:
        if not isinstance(query, str) or not query.strip():
            raise SearchValidationError("Query must not be empty")
        if len(query) > self.MAX_QUERY_CHARS:
            raise SearchValidationError(f"Query exceeds {self.MAX_QUERY_CHARS} characters")
        try:
            query.encode("utf-8")
        except UnicodeEncodeError as e:
            raise SearchValidationError("Query contains characters that are not valid UTF-8") from e
        if not (options.enable_exact_match or options.enable_fuzzy_match or options.enable_semantic_search):
            raise SearchValidationError("At least one of exact, fuzzy or semantic search must be enabled")

    async def _execute(self, query: str, options: SearchOptions) -> SearchOutcome:
        self._validate(query, options)

        classification = self.classifier.classify(query)
        routing = self.router.route(query, options.collection)
        outcome = SearchOutcome(classification=classification, routing=routing)

        if options.result_limit == 0:
            return outcome

        timeout = options.timeout_seconds or self.timeout_seconds

        with Timer("unified_search") as timer:
            candidates = await self._retrieve(query, options, outcome, timeout)

            if outcome.attempted and not outcome.succeeded:
                raise SearchUnavailableError(
                    "No search strategy could run: " + "; ".join(outcome.warnings),
                    failures=list(outcome.warnings),
                )

            results = self._merge(candidates)
            if options.enable_metadata_filter and options.filter_by and not options.filter_by.is_empty():
                results = self._apply_metadata_filters(results, options.filter_by)
            results = self._apply_exclusions(results, options.exclude_codes)
            if options.min_score is not None:
                results = [r for r in results if r.score >= options.min_score]

            prioritize = options.prioritize_stock
            if prioritize is None:
                prioritize = routing.search_mode == SearchMode.PRIORITIZE_STOCK
            if prioritize and routing.searches_both:
                results = self._prioritize_stock(results)

            outcome.results = self._sort(results)[:options.result_limit]

        logger.info(
            "Unified search completed",
            query=sanitize_for_logging(query),
            query_type=classification.query_type.value,
            collections=[c.value for c in routing.collections],
            strategies=outcome.succeeded,
            results=len(outcome.results),
            warnings=len(outcome.warnings),
            duration_ms=timer.duration_ms
        )
        return outcome

    async def _run_leg(self, name: str, leg: Awaitable[List[UnifiedSearchResult]],
                       timeout: Optional[float], outcome: SearchOutcome) -> List[UnifiedSearchResult]:
        outcome.attempted.append(name)
        try:
            if timeout:
                results = await asyncio.wait_for(leg, timeout=timeout)
            else:
                results = await leg
        except DimensionMismatchError:
            raise
        except EmbeddingDimensionError:
            raise
        except asyncio.TimeoutError:
            outcome.skip(name, f"{name} search timed out after {timeout:.1f}s")
            return []
        except StrategyUnavailableError as e:
            outcome.skip(name, f"{name} search unavailable: {e}")
            return []
        except MaterialSearchError as e:
            outcome.skip(name, f"{name} search failed: {e}")
            return []

        outcome.succeeded.append(name)
        return results

    async def _retrieve(self, query: str, options: SearchOptions, outcome: SearchOutcome,
                        timeout: Optional[float]) -> List[UnifiedSearchResult]:
        classification, routing = outcome.classification, outcome.routing
        collections = routing.collections

        exact_first = (
            options.enable_exact_match
            and classification.query_type == QueryType.EXACT_CODE
        )
        candidates: List[UnifiedSearchResult] = []

        if exact_first:
            # Code lookups are answered by the exact hits alone when there are any
            batches = await asyncio.gather(*[
                self._run_leg(f"exact:{c.value}", self._exact_match(c, query, classification), timeout, outcome)
                for c in collections
            ])
            candidates = [r for batch in batches for r in batch]
            if candidates:
                return candidates

        legs = []
        if options.enable_exact_match and not exact_first:
            legs.extend(
                self._run_leg(f"exact:{c.value}", self._exact_match(c, query, classification), timeout, outcome)
                for c in collections
            )

        if options.enable_fuzzy_match:
            terms = self._fuzzy_terms(query, classification)
            if terms:
                legs.extend(
                    self._run_leg(f"fuzzy:{c.value}", self._fuzzy_match(c, terms), timeout, outcome)
                    for c in collections
                )
            else:
                logger.debug("Fuzzy matching skipped for long query", words=len(query.split()))

        if options.enable_semantic_search:
            semantic_timeout = timeout * self.SEMANTIC_TIMEOUT_SHARE if timeout else None
            legs.append(self._run_leg(
                "semantic",
                self._semantic_search(collections, classification, options),
                semantic_timeout,
                outcome,
            ))

        for batch in await asyncio.gather(*legs):
            candidates.extend(batch)
        return candidates

    # Strategies

    def _require_document_store(self) -> MaterialStore:
        if self.document_store is None:
            raise StrategyUnavailableError("document store not configured")
        return self.document_store

    @staticmethod
    def _result(document: MaterialDocument, score: float, match_type: MatchType,
                matched_fields: List[str], source_store: SourceStore) -> UnifiedSearchResult:
        return UnifiedSearchResult(
            document=document,
            score=round(min(max(score, 0.0), 1.0), 4),
            match_type=match_type,
            confidence=STRATEGY_CONFIDENCE.get(match_type, 0.7),
            matched_fields=matched_fields,
            source_store=source_store,
            source_collection=document.source_collection,
            availability=document.availability,
        )

    async def _exact_match(self, collection: CollectionType, query: str,
                           classification: ClassificationResult) -> List[UnifiedSearchResult]:
        store = self._require_document_store()
        entities = classification.entities
        results: List[UnifiedSearchResult] = []

        if entities.codes:
            for document in await store.find_by_codes(collection, entities.codes, limit=self.CANDIDATE_LIMIT):
                results.append(self._result(
                    document, self.EXACT_SCORE, MatchType.EXACT, ["material_code"], SourceStore.MONGODB
                ))

        if entities.code_range:
            documents = await store.find_code_range(
                collection, entities.code_range.start, entities.code_range.end, limit=self.CANDIDATE_LIMIT
            )
            for document in documents:
                results.append(self._result(
                    document, self.CODE_RANGE_SCORE, MatchType.EXACT, ["material_code"], SourceStore.MONGODB
                ))

        values = list(entities.names)
        if not entities.codes and not entities.code_range:
            values.append(query.strip())
        if values:
            lowered = {v.lower() for v in values}
            codes = {normalize_code(v) for v in values}
            for document in await store.find_by_fields(collection, values, NAME_FIELDS, limit=self.CANDIDATE_LIMIT):
                matched = []
                if document.key in codes:
                    matched.append("material_code")
                if document.trade_name and document.trade_name.strip().lower() in lowered:
                    matched.append("trade_name")
                if document.inci_name and document.inci_name.strip().lower() in lowered:
                    matched.append("inci_name")
                results.append(self._result(
                    document, self.EXACT_SCORE, MatchType.EXACT, matched or ["trade_name"], SourceStore.MONGODB
                ))

        return results

    def _fuzzy_terms(self, query: str, classification: ClassificationResult) -> List[str]:
        entities = classification.entities
        terms: List[str] = []
        # Whole-query substring matching is pointless for long natural-language queries
        if len(query.split()) <= self.FUZZY_MAX_WORDS:
            terms.append(query.strip())
        terms.extend(entities.codes)
        terms.extend(entities.names)
        terms.extend(entities.properties)
        terms.extend(entities.suppliers)

        unique: List[str] = []
        for term in terms:
            if term and len(term) >= 2 and term.lower() not in (u.lower() for u in unique):
                unique.append(term)
        return unique

    @staticmethod
    def _field_values(document: MaterialDocument, field_name: str) -> List[str]:
        if field_name == "material_code":
            return [document.material_code]
        if field_name == "supplier":
            return [v for v in (document.supplier, document.company_name) if v]
        value = getattr(document, field_name, None)
        if isinstance(value, list):
            return value
        return [value] if value else []

    def fuzzy_score(self, document: MaterialDocument, terms: List[str]):
        """
        Score a document against fuzzy terms.

        Each (term, field value) containment scores
        FUZZY_SCORE_CAP * field weight * (0.5 + 0.5 * len(term) / len(value)),
        so a fuzzy hit always stays below an exact hit.

        Returns:
            (best score, matched canonical fields)
        """
        best = 0.0
        matched: List[str] = []
        for field_name, weight in FUZZY_FIELD_WEIGHTS.items():
            for value in self._field_values(document, field_name):
                value_lower = value.lower()
                for term in terms:
                    term_lower = term.lower()
                    if field_name == "material_code":
                        hit = normalize_code(term) and normalize_code(term) in normalize_code(value)
                        ratio = len(normalize_code(term)) / max(len(normalize_code(value)), 1)
                    else:
                        hit = term_lower in value_lower
                        ratio = len(term_lower) / max(len(value_lower), 1)
                    if not hit:
                        continue
                    score = self.FUZZY_SCORE_CAP * weight * (0.5 + 0.5 * min(ratio, 1.0))
                    best = max(best, score)
                    if field_name not in matched:
                        matched.append(field_name)
        return round(best, 4), matched

    async def _fuzzy_match(self, collection: CollectionType, terms: List[str]) -> List[UnifiedSearchResult]:
        store = self._require_document_store()
        documents = await store.find_containing(
            collection, terms, NAME_FIELDS + PROPERTY_FIELDS + ["supplier"], limit=self.CANDIDATE_LIMIT
        )

        results = []
        for document in documents:
            score, matched = self.fuzzy_score(document, terms)
            if score <= 0:
                continue
            results.append(self._result(document, score, MatchType.FUZZY, matched, SourceStore.MONGODB))
        return results

    async def _semantic_search(self, collections: List[CollectionType], classification: ClassificationResult,
                               options: SearchOptions) -> List[UnifiedSearchResult]:
        if not self.semantic_available:
            raise StrategyUnavailableError("vector store not configured")

        variants = classification.expanded_queries[:self.MAX_SEMANTIC_VARIANTS] or [classification.query]
        vectors = await self.embeddings.embed(variants)
        top_k = max(options.result_limit, 1) * self.overfetch_factor

        targets = [(collection, vector) for collection in collections for vector in vectors]
        responses = await asyncio.gather(*[
            self.vector_store.query(vector, collection.value, top_k) for collection, vector in targets
        ])

        best: Dict[str, UnifiedSearchResult] = {}
        for (collection, _), matches in zip(targets, responses):
            for match in matches:
                score = min(max(match.score, 0.0), 1.0)
                if score < options.similarity_threshold:
                    continue
                try:
                    document = normalize_material(match.metadata, collection)
                except ValidationError:
                    logger.debug("Skipping vector match without material metadata", vector_id=match.id)
                    continue

                key = f"{collection.value}:{document.key}"
                if key in best and best[key].score >= score:
                    continue
                best[key] = self._result(
                    document, score, MatchType.SEMANTIC, self._chunk_fields(match.metadata), SourceStore.PINECONE
                )
        return list(best.values())

    @staticmethod
    def _chunk_fields(metadata: Dict[str, Any]) -> List[str]:
        source = metadata.get("field_source")
        if isinstance(source, str):
            fields = [f.strip() for f in source.split(",") if f.strip()]
        elif isinstance(source, list):
            fields = [str(f) for f in source]
        else:
            fields = []
        return fields or ([metadata["chunk_type"]] if metadata.get("chunk_type") else [])

    # Post-processing

    def _merge(self, candidates: List[UnifiedSearchResult]) -> List[UnifiedSearchResult]:
        """Deduplicate by material code; in-stock wins availability, best score wins."""
        merged: Dict[str, UnifiedSearchResult] = {}
        match_types: Dict[str, set] = {}

        for candidate in candidates:
            key = candidate.document.key
            existing = merged.get(key)
            if existing is None:
                merged[key] = candidate
                match_types[key] = {candidate.match_type}
                continue

            match_types[key].add(candidate.match_type)
            best = candidate if candidate.score > existing.score else existing
            stock = next(
                (r for r in (existing, candidate) if r.availability == Availability.IN_STOCK), best
            )
            fields = list(existing.matched_fields)
            fields.extend(f for f in candidate.matched_fields if f not in fields)
            kinds = match_types[key]

            merged[key] = UnifiedSearchResult(
                document=stock.document,
                score=best.score,
                match_type=MatchType.HYBRID if len(kinds) > 1 else best.match_type,
                confidence=max(existing.confidence, candidate.confidence),
                matched_fields=fields,
                source_store=best.source_store,
                source_collection=stock.document.source_collection,
                availability=stock.document.availability,
            )

        return list(merged.values())

    def _apply_metadata_filters(self, results: List[UnifiedSearchResult],
                                filters: SearchFilters) -> List[UnifiedSearchResult]:
        filtered = []
        for result in results:
            document = result.document
            score = result.score

            if filters.benefit:
                term = filters.benefit.lower()
                tags = document.benefits + document.use_cases + ([document.function] if document.function else [])
                if not any(term in tag.lower() for tag in tags):
                    continue

            if filters.supplier:
                term = filters.supplier.lower()
                owners = [v for v in (document.supplier, document.company_name) if v]
                if not any(term in owner.lower() for owner in owners):
                    continue

            if filters.max_cost is not None:
                if document.cost is None:
                    score *= self.UNKNOWN_COST_PENALTY
                elif document.cost > filters.max_cost:
                    continue

            fields = list(result.matched_fields)
            if "metadata" not in fields:
                fields.append("metadata")
            filtered.append(result.model_copy(update={"score": round(score, 4), "matched_fields": fields}))

        logger.debug("Metadata filters applied", before=len(results), after=len(filtered))
        return filtered

    @staticmethod
    def _apply_exclusions(results: List[UnifiedSearchResult], exclude_codes: List[str]) -> List[UnifiedSearchResult]:
        if not exclude_codes:
            return results
        excluded = {normalize_code(code) for code in exclude_codes}
        return [r for r in results if r.document.key not in excluded]

    def _prioritize_stock(self, results: List[UnifiedSearchResult]) -> List[UnifiedSearchResult]:
        """
        Lift in-stock scores by the prioritization epsilon where that
        overtakes an FDA-only result.

        Only in-stock results with an FDA-only score in [score, score + epsilon]
        are lifted; every other score is left as the strategy produced it.
        """
        epsilon = self.prioritization_epsilon
        fda_scores = [r.score for r in results if r.availability == Availability.FDA_ONLY]

        prioritized = []
        for result in results:
            overtakes = result.availability == Availability.IN_STOCK and any(
                result.score <= score <= result.score + epsilon for score in fda_scores
            )
            if not overtakes:
                prioritized.append(result)
                continue
            prioritized.append(result.model_copy(update={
                "score": round(min(result.score + epsilon, 1.0), 4),
                "is_prioritized": True,
            }))
        return prioritized

    @staticmethod
    def _sort(results: List[UnifiedSearchResult]) -> List[UnifiedSearchResult]:
        return sorted(
            results,
            key=lambda r: (-r.score, r.availability != Availability.IN_STOCK, r.document.key),
        )

    def _error_response(self, query: str, message: str, error_type: str, language) -> SearchResponse:
        logger.warning("Search request failed", error_type=error_type, error=message)
        return SearchResponse(
            success=False,
            results=[],
            formatted=format_error_message(message, language, error_type),
            # echoed back as JSON, so unencodable characters are replaced
            query=query.encode("utf-8", "replace").decode("utf-8"),
            total_results=0,
            error=message,
            error_type=error_type,
        )


def build_search_service(config: Dict[str, Any]) -> UnifiedSearchService:
    """
    Construct the search service and its collaborators from configuration.

    Missing MongoDB or Pinecone settings disable the strategies that need
    them. An embedding provider that cannot be initialized disables semantic
    search.
    """
    document_store = None
    if config.get("MONGODB_URI"):
        document_store = MaterialStore(
            uri=config["MONGODB_URI"],
            database=config.get("MONGODB_DATABASE", "rnd_ai"),
            collection_names={
                CollectionType.IN_STOCK: config.get("MONGODB_IN_STOCK_COLLECTION", "raw_materials_real_stock"),
                CollectionType.ALL_FDA: config.get("MONGODB_ALL_FDA_COLLECTION", "raw_materials_console"),
            },
        )

    vector_store = None
    embeddings = None
    if config.get("PINECONE_API_KEY"):
        vector_store = PineconeVectorStore(
            api_key=config["PINECONE_API_KEY"],
            index_name=config.get("PINECONE_INDEX_NAME", "raw-materials-stock"),
            cloud=config.get("PINECONE_CLOUD", "aws"),
            region=config.get("PINECONE_REGION", "us-east-1"),
            query_timeout=config.get("VECTOR_SEARCH_TIMEOUT", 8.0),
        )
        try:
            embeddings = build_embedding_service(config)
        except EmbeddingInitializationError as e:
            logger.warning("Semantic search disabled: no embedding provider", error=str(e))

    return UnifiedSearchService(
        document_store=document_store,
        vector_store=vector_store,
        embeddings=embeddings,
        default_top_k=config.get("RETRIEVAL_TOP_K", 5),
        similarity_threshold=config.get("SIMILARITY_THRESHOLD", 0.5),
        prioritization_epsilon=config.get("STOCK_PRIORITY_EPSILON", 0.05),
        overfetch_factor=config.get("SEMANTIC_OVERFETCH_FACTOR", 3),
        timeout_seconds=config.get("SEARCH_TIMEOUT_SECONDS", 10.0),
    )
