"""
Raw materials search service.

Unified search over the in-stock inventory and the FDA-registered catalog of
cosmetic raw materials, backed by MongoDB and Pinecone.

Main Components:
- query_classifier: query type, entities, language and expansions
- collection_router: which collection(s) a query should search
- embeddings: Gemini / OpenAI embedding providers with fallback
- search: hybrid exact, fuzzy and semantic search with merging and ranking
- formatting: markdown tables and localized messages
- indexer: chunk, embed and upsert material documents
"""

__version__ = "1.0.0"

from .collection_router import CollectionRouter
from .embeddings import EmbeddingService, build_embedding_service
from .exceptions import (
    DimensionMismatchError,
    MaterialSearchError,
    SearchUnavailableError,
    SearchValidationError,
)
from .models import (
    ClassificationResult,
    CollectionScope,
    CollectionType,
    MaterialDocument,
    RoutingDecision,
    SearchOptions,
    SearchRequest,
    SearchResponse,
    UnifiedSearchResult,
)
from .query_classifier import QueryClassifier
from .search import UnifiedSearchService, build_search_service

__all__ = [
    'ClassificationResult',
    'CollectionRouter',
    'CollectionScope',
    'CollectionType',
    'DimensionMismatchError',
    'EmbeddingService',
    'MaterialDocument',
    'MaterialSearchError',
    'QueryClassifier',
    'RoutingDecision',
    'SearchOptions',
    'SearchRequest',
    'SearchResponse',
    'SearchUnavailableError',
    'SearchValidationError',
    'UnifiedSearchResult',
    'UnifiedSearchService',
    'build_embedding_service',
    'build_search_service'
]
