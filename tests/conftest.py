"""
Shared fixtures for the raw materials search tests.

The fakes below stand in for MongoDB, Pinecone and the embedding API:
- InMemoryMaterialStore: MaterialStore interface over Python lists
- InMemoryVectorStore: namespaced cosine-similarity index
- KeywordEmbeddingProvider: deterministic concept-count vectors, so texts
  sharing a concept (moisturizing, brightening, ...) are close

Usage:
    async def test_example(search_service):
        results = await search_service.unified_search("RM000123")
"""

import asyncio
import re
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from data_processing import MaterialChunker
from material_search.embeddings import EmbeddingProvider, EmbeddingService
from material_search.exceptions import (
    DimensionMismatchError,
    DocumentStoreError,
    VectorStoreError,
)
from material_search.models import CollectionType, MaterialDocument, normalize_code, normalize_material
from material_search.search import UnifiedSearchService
from material_search.vector import VectorMatch, flatten_metadata


# ---
# FAKE BACKENDS
# ---


CONCEPTS = [
    ["moistur", "hydrat", "humectant", "ชุ่มชื้น", "hyaluron"],
    ["whiten", "bright", "กระจ่างใส", "ผิวขาว"],
    ["anti-aging", "wrinkle", "ริ้วรอย", "peptide"],
    ["acne", "สิว", "blemish"],
    ["sunscreen", "กันแดด", "spf"],
    ["emollient", "smooth"],
    ["preserv", "antimicrobial"],
]

# Whole words that identify test materials by name
VOCABULARY = [
    "hydra", "boost", "bright", "aqua", "silk", "niacinamide", "hydromax",
    "emolline", "glycerin", "titan", "zinc", "rose", "shea", "cera", "lumi",
    "velvet", "pure", "gold", "green", "tea", "plus",
]

VOCABULARY_WEIGHT = 0.5
BIAS = 0.01


class KeywordEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic provider: concept counts, vocabulary word counts and a
    small constant bias, so unrelated texts have near-zero similarity.
    """

    name = "fake"

    def __init__(self, dimensions: int = len(CONCEPTS) + len(VOCABULARY) + 1):
        super().__init__("fake-embedding", dimensions)
        self.calls: List[List[str]] = []
        self.fail_with: Optional[Exception] = None
        self.wrong_dimension = False

    def vectorize(self, text: str) -> List[float]:
        lowered = text.lower()
        words = re.findall(r"[a-z]+", lowered)
        vector = [float(sum(lowered.count(term) for term in terms)) for terms in CONCEPTS]
        vector.extend(VOCABULARY_WEIGHT * words.count(word) for word in VOCABULARY)
        vector.append(BIAS)
        vector = vector + [0.0] * (self.dimensions - len(vector))
        return vector[:self.dimensions]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        if self.wrong_dimension:
            return [self.vectorize(t) + [0.0] for t in texts]
        return [self.vectorize(t) for t in texts]


class InMemoryMaterialStore:
    """MaterialStore lookalike over in-memory documents."""

    def __init__(self, documents: Dict[CollectionType, List[MaterialDocument]]):
        self.documents = {c: list(documents.get(c, [])) for c in CollectionType}
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0
        self.closed = False

    async def _before(self, operation: str) -> None:
        self.calls.append(operation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    @staticmethod
    def _values(document: MaterialDocument, field_name: str) -> List[str]:
        if field_name == "supplier":
            return [v for v in (document.supplier, document.company_name) if v]
        value = getattr(document, field_name, None)
        if isinstance(value, list):
            return value
        return [value] if value else []

    async def find_by_codes(self, collection, codes, limit=50):
        await self._before("find_by_codes")
        wanted = {normalize_code(c) for c in codes}
        return [d for d in self.documents[collection] if d.key in wanted][:limit]

    async def find_by_fields(self, collection, values, fields, limit=50):
        await self._before("find_by_fields")
        wanted = {v.strip().lower() for v in values if v and v.strip()}
        return [
            d for d in self.documents[collection]
            if any(value.lower() in wanted for f in fields for value in self._values(d, f))
        ][:limit]

    async def find_containing(self, collection, terms, fields, limit=50):
        await self._before("find_containing")
        terms = [t.lower() for t in terms if t and t.strip()]
        return [
            d for d in self.documents[collection]
            if any(t in value.lower() for f in fields for value in self._values(d, f) for t in terms)
        ][:limit]

    async def find_code_range(self, collection, start, end, limit=50):
        await self._before("find_code_range")
        start, end = normalize_code(start), normalize_code(end)
        found = sorted(
            (d for d in self.documents[collection] if start <= d.key <= end),
            key=lambda d: d.key
        )
        return found[:limit]

    async def count_documents(self, collection, query=None):
        await self._before("count_documents")
        return len(self.documents[collection])

    async def iter_documents(self, collection, batch_size=500):
        await self._before("iter_documents")
        for document in self.documents[collection]:
            yield document

    async def ping(self):
        return self.fail_with is None

    async def close(self):
        self.closed = True


class InMemoryVectorStore:
    """PineconeVectorStore lookalike with cosine similarity."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.namespaces: Dict[str, Dict[str, Dict[str, Any]]] = {c.value: {} for c in CollectionType}
        self.queries: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0
        self.closed = False

    def ensure_index(self, dimension: int) -> bool:
        if dimension != self.dimension:
            raise DimensionMismatchError(expected=dimension, actual=self.dimension, context="index 'fake'")
        return False

    async def describe_index_stats(self):
        return {
            "dimension": self.dimension,
            "total_vector_count": sum(len(v) for v in self.namespaces.values()),
            "namespaces": {name: len(vectors) for name, vectors in self.namespaces.items()},
        }

    async def query(self, vector, namespace, top_k, metadata_filter=None):
        self.queries.append({"namespace": namespace, "top_k": top_k})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if len(vector) != self.dimension:
            raise DimensionMismatchError(expected=self.dimension, actual=len(vector), context="index 'fake'")

        query = np.asarray(vector, dtype=float)
        matches = []
        for vector_id, record in self.namespaces[namespace].items():
            values = np.asarray(record["values"], dtype=float)
            score = float(query @ values / (np.linalg.norm(query) * np.linalg.norm(values)))
            matches.append(VectorMatch(id=vector_id, score=score, metadata=dict(record["metadata"])))
        matches.sort(key=lambda m: (-m.score, m.id))
        return matches[:top_k]

    def upsert_records(self, namespace, records, batch_size=100):
        for record in records:
            self.namespaces[namespace][record["id"]] = {
                "values": record["values"],
                "metadata": flatten_metadata(record["metadata"]),
            }
        return {"namespace": namespace, "upserted_count": len(records), "failed_batches": 0}

    def delete_namespace(self, namespace):
        self.namespaces[namespace] = {}

    def close(self):
        self.closed = True


# ---
# TEST DATA
# ---


STOCK_RECORDS = [
    {
        "rm_code": "RM000123",
        "trade_name": "Hydra Boost HA",
        "inci_name": "Sodium Hyaluronate",
        "supplier": "Bloomage",
        "rm_cost": "1,250.50",
        "benefits": ["moisturizing", "plumping"],
        "usecase": "serum, cream",
        "details": "High molecular weight hyaluronic acid for deep hydration.",
    },
    {
        "rm_code": "RM000200",
        "trade_name": "Bright C",
        "inci_name": "Ascorbyl Glucoside",
        "supplier": "Hayashibara",
        "rm_cost": 3200,
        "benefits": "whitening; antioxidant",
        "details": "Stable vitamin C derivative for brightening formulas.",
    },
    {
        "rm_code": "RM000301",
        "trade_name": "Aqua Silk",
        "inci_name": "Glycerin",
        "company_name": "Croda",
        "benefits": '["moisturizing", "humectant"]',
        "details": "Plant glycerin humectant.",
    },
]

FDA_RECORDS = [
    {
        "rm_code": "RM000123",
        "trade_name": "Hydra Boost HA",
        "INCI_name": "Sodium Hyaluronate",
        "Function": "Humectant",
        "benefits_cached": "moisturizing",
    },
    {
        "rm_code": "RM000777",
        "trade_name": "Niacinamide PC",
        "INCI_name": "Niacinamide",
        "Function": "Skin conditioning",
        "benefits_cached": "whitening, anti-acne",
    },
    {
        "rm_code": "RM000888",
        "trade_name": "HydroMax Plus",
        "INCI_name": "Sodium PCA",
        "Function": "Humectant",
        "supplier": "Ajinomoto",
        "benefits": "moisturizing; hydrating",
    },
    {
        "rm_code": "RM000901",
        "trade_name": "Emolline",
        "INCI_name": "Caprylic/Capric Triglyceride",
        "Function": "Emollient",
        "benefits_cached": "emollient, smoothing",
    },
]


def _documents(records, collection):
    return [normalize_material(record, collection) for record in records]


def index_documents(vector_store: InMemoryVectorStore, provider: KeywordEmbeddingProvider,
                    documents: Dict[CollectionType, List[MaterialDocument]]) -> None:
    chunker = MaterialChunker()
    for collection, docs in documents.items():
        records = [
            {"id": chunk.id, "values": provider.vectorize(chunk.text), "metadata": chunk.metadata}
            for chunk in chunker.chunk_documents(docs, collection)
        ]
        vector_store.upsert_records(collection.value, records)


# ---
# FIXTURES
# ---


@pytest.fixture
def stock_documents() -> List[MaterialDocument]:
    return _documents(STOCK_RECORDS, CollectionType.IN_STOCK)


@pytest.fixture
def fda_documents() -> List[MaterialDocument]:
    return _documents(FDA_RECORDS, CollectionType.ALL_FDA)


@pytest.fixture
def catalog(stock_documents, fda_documents) -> Dict[CollectionType, List[MaterialDocument]]:
    return {CollectionType.IN_STOCK: stock_documents, CollectionType.ALL_FDA: fda_documents}


@pytest.fixture
def embedding_provider() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider) -> EmbeddingService:
    return EmbeddingService(embedding_provider, batch_size=10)


@pytest.fixture
def document_store(catalog) -> InMemoryMaterialStore:
    return InMemoryMaterialStore(catalog)


@pytest.fixture
def vector_store(catalog, embedding_provider) -> InMemoryVectorStore:
    store = InMemoryVectorStore(dimension=embedding_provider.dimensions)
    index_documents(store, embedding_provider, catalog)
    return store


@pytest.fixture
def search_service(document_store, vector_store, embedding_service) -> UnifiedSearchService:
    return UnifiedSearchService(
        document_store=document_store,
        vector_store=vector_store,
        embeddings=embedding_service,
        default_top_k=5,
        similarity_threshold=0.5,
        prioritization_epsilon=0.05,
        timeout_seconds=2.0,
    )


@pytest.fixture
def make_search_service(embedding_provider, embedding_service):
    """Factory for a search service over a custom catalog."""

    def factory(documents: Dict[CollectionType, List[MaterialDocument]], **overrides) -> UnifiedSearchService:
        vector_store = InMemoryVectorStore(dimension=embedding_provider.dimensions)
        index_documents(vector_store, embedding_provider, documents)
        settings = {
            "default_top_k": 5,
            "similarity_threshold": 0.5,
            "prioritization_epsilon": 0.05,
            "timeout_seconds": 2.0,
        }
        settings.update(overrides)
        return UnifiedSearchService(
            document_store=InMemoryMaterialStore(documents),
            vector_store=vector_store,
            embeddings=embedding_service,
            **settings,
        )

    return factory


@pytest.fixture
def failing_errors():
    """Strategy-level errors the search service must degrade on."""
    return {
        "document": DocumentStoreError("connection refused"),
        "vector": VectorStoreError("index unreachable"),
    }
