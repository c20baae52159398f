"""
Embedding providers and the embedding service used for semantic search.

PROVIDERS:
- GeminiEmbeddingProvider: langchain-google-genai, 768 dims by default
- OpenAIEmbeddingProvider: openai AsyncOpenAI, 1536 or 3072 dims

SERVICE:
- embed / embed_one with in-order batching (<= 100 texts per provider call)
- md5-keyed embedding cache so identical texts return identical vectors
- embed_best_effort skips failed sub-batches and reports dropped indices
- dimension and finiteness checks on every provider response

PROVIDER SELECTION:
- select_embedding_provider tries an ordered list of factories and returns a
  ProviderSelection (provider, or the errors of every attempt)
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger
from langchain_google_genai import GoogleGenerativeAIEmbeddings
from openai import AsyncOpenAI

from material_search.exceptions import (
    EmbeddingDimensionError,
    EmbeddingError,
    EmbeddingInitializationError,
)


GEMINI_MODEL_DIMENSIONS = {
    "models/gemini-embedding-001": 3072,
    "models/text-embedding-004": 768,
    "models/embedding-001": 768,
}

# Models that accept a reduced output_dimensionality
GEMINI_CONFIGURABLE_MODELS = {"models/gemini-embedding-001"}

OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

PROVIDER_BATCH_CEILING = 100


class EmbeddingProvider(ABC):
    """A text embedding backend with a fixed output dimension."""

    name: str = ""
    max_batch_size: int = PROVIDER_BATCH_CEILING

    def __init__(self, model: str, dimensions: int):
        self.model = model
        self.dimensions = dimensions

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed at most max_batch_size texts in one provider call."""


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Gemini embeddings through langchain-google-genai."""

    name = "gemini"

    def __init__(self, api_key: Optional[str], model: str = "models/gemini-embedding-001",
                 dimensions: Optional[int] = 768, client: Any = None):
        if not api_key and client is None:
            raise EmbeddingError("GEMINI_API_KEY is not set")

        if model in GEMINI_CONFIGURABLE_MODELS and dimensions:
            self._output_dimensionality = dimensions
        else:
            self._output_dimensionality = None
            dimensions = GEMINI_MODEL_DIMENSIONS.get(model, 3072)

        super().__init__(model, dimensions)
        self._client = client or GoogleGenerativeAIEmbeddings(model=model, google_api_key=api_key)

        logger.info("Gemini embedding provider initialized", model=model, dimensions=self.dimensions)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if self._output_dimensionality:
            return await self._client.aembed_documents(
                texts, output_dimensionality=self._output_dimensionality
            )
        return await self._client.aembed_documents(texts)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings through the async client."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "text-embedding-3-small",
                 timeout: float = 10.0, client: Any = None):
        if not api_key and client is None:
            raise EmbeddingError("OPENAI_API_KEY is not set")
        if model not in OPENAI_MODEL_DIMENSIONS:
            raise EmbeddingError(f"Unknown OpenAI embedding model: {model}")

        super().__init__(model, OPENAI_MODEL_DIMENSIONS[model])
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)

        logger.info("OpenAI embedding provider initialized", model=model, dimensions=self.dimensions)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        response = await self._client.embeddings.create(model=self.model, input=texts)
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]


@dataclass
class BatchEmbeddingResult:
    """Best-effort batch output; dropped items are None."""
    embeddings: List[Optional[List[float]]]
    dropped_indices: List[int] = field(default_factory=list)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped_indices)


@dataclass
class ProviderSelection:
    """Outcome of trying provider factories in order."""
    provider: Optional[EmbeddingProvider]
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.provider is not None


class EmbeddingService:
    """
    Converts text into fixed-dimension vectors with one provider.

    Constructed once at startup and shared by request handlers; the only
    mutable state is the embedding cache.
    """

    def __init__(self, provider: EmbeddingProvider, batch_size: int = PROVIDER_BATCH_CEILING,
                 cache_size: int = 10000):
        self._provider = provider
        self.batch_size = max(1, min(batch_size, provider.max_batch_size))
        self.cache_size = cache_size
        self.embedding_cache: Dict[str, List[float]] = {}

    def provider(self) -> str:
        return self._provider.name

    def dimensions(self) -> int:
        return self._provider.dimensions

    @property
    def model(self) -> str:
        return self._provider.model

    def _cache_key(self, text: str) -> str:
        raw = f"{self._provider.name}:{self._provider.model}:{text}"
        # Lone surrogates must still hash; a provider that rejects them raises EmbeddingError
        return hashlib.md5(raw.encode('utf-8', 'surrogatepass')).hexdigest()

    def _remember(self, text: str, vector: List[float]) -> None:
        if self.cache_size <= 0:
            return
        if len(self.embedding_cache) >= self.cache_size:
            # dicts keep insertion order; evict the oldest entry
            self.embedding_cache.pop(next(iter(self.embedding_cache)))
        self.embedding_cache[self._cache_key(text)] = vector

    def _validate(self, texts: List[str], vectors: List[List[float]]) -> List[List[float]]:
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"{self._provider.name} returned {len(vectors)} embeddings for {len(texts)} texts"
            )

        for vector in vectors:
            if len(vector) != self.dimensions():
                raise EmbeddingDimensionError(
                    f"{self._provider.name}/{self._provider.model} returned {len(vector)}-dimensional "
                    f"vectors, expected {self.dimensions()}"
                )

        array = np.asarray(vectors, dtype=np.float64)
        if not np.isfinite(array).all():
            raise EmbeddingError(f"{self._provider.name} returned non-finite embedding values")

        return array.tolist()

    async def _embed_uncached(self, texts: List[str]) -> List[List[float]]:
        try:
            vectors = await self._provider.embed_batch(texts)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"{self._provider.name} embedding failed: {e}") from e
        return self._validate(texts, vectors)

    def _plan(self, texts: Sequence[str]) -> Tuple[List[Optional[List[float]]], List[int]]:
        for index, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise EmbeddingError(f"Cannot embed empty text at index {index}")

        results: List[Optional[List[float]]] = []
        missing: List[int] = []
        for index, text in enumerate(texts):
            cached = self.embedding_cache.get(self._cache_key(text))
            results.append(cached)
            if cached is None:
                missing.append(index)
        return results, missing

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed texts in order. Failures propagate as EmbeddingError.

        Args:
            texts: Texts to embed

        Returns:
            One vector per text, each of length dimensions()
        """
        texts = list(texts)
        if not texts:
            return []

        results, missing = self._plan(texts)

        for start in range(0, len(missing), self.batch_size):
            batch_indices = missing[start:start + self.batch_size]
            batch_texts = [texts[i] for i in batch_indices]
            vectors = await self._embed_uncached(batch_texts)
            for index, text, vector in zip(batch_indices, batch_texts, vectors):
                results[index] = vector
                self._remember(text, vector)

        return results

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]

    async def embed_best_effort(self, texts: Sequence[str]) -> BatchEmbeddingResult:
        """
        Embed texts, skipping sub-batches that fail.

        Dimension mismatches are configuration errors and still raise.
        """
        texts = list(texts)
        if not texts:
            return BatchEmbeddingResult(embeddings=[])

        results, missing = self._plan(texts)
        dropped: List[int] = []

        for start in range(0, len(missing), self.batch_size):
            batch_indices = missing[start:start + self.batch_size]
            batch_texts = [texts[i] for i in batch_indices]
            try:
                vectors = await self._embed_uncached(batch_texts)
            except EmbeddingDimensionError:
                raise
            except EmbeddingError as e:
                dropped.extend(batch_indices)
                logger.warning(
                    "Embedding sub-batch failed, items dropped",
                    provider=self._provider.name,
                    dropped_indices=batch_indices,
                    error=str(e)
                )
                continue

            for index, text, vector in zip(batch_indices, batch_texts, vectors):
                results[index] = vector
                self._remember(text, vector)

        if dropped:
            logger.warning(
                "Batch embedding completed with dropped items",
                total=len(texts),
                dropped_count=len(dropped)
            )
        return BatchEmbeddingResult(embeddings=results, dropped_indices=dropped)


ProviderFactory = Callable[[], EmbeddingProvider]


def select_embedding_provider(factories: Sequence[Tuple[str, ProviderFactory]]) -> ProviderSelection:
    """
    Try provider factories in order and return the first that initializes.

    Args:
        factories: (name, factory) pairs in preference order

    Returns:
        ProviderSelection with the provider, or with every attempt's error
    """
    errors: Dict[str, str] = {}
    for name, factory in factories:
        try:
            provider = factory()
        except Exception as e:
            errors[name] = str(e)
            logger.warning("Embedding provider unavailable, trying next", provider=name, error=str(e))
            continue

        if errors:
            logger.info("Using fallback embedding provider", provider=name, failed=list(errors))
        return ProviderSelection(provider=provider, errors=errors)

    return ProviderSelection(provider=None, errors=errors)


def provider_factories(config: Dict[str, Any]) -> List[Tuple[str, ProviderFactory]]:
    """Configured providers, primary first."""
    factories: Dict[str, ProviderFactory] = {
        "gemini": lambda: GeminiEmbeddingProvider(
            api_key=config.get("GEMINI_API_KEY"),
            model=config.get("GEMINI_EMBEDDING_MODEL", "models/gemini-embedding-001"),
            dimensions=config.get("GEMINI_EMBEDDING_DIMENSIONS", 768),
        ),
        "openai": lambda: OpenAIEmbeddingProvider(
            api_key=config.get("OPENAI_API_KEY"),
            model=config.get("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        ),
    }
    primary = config.get("EMBEDDING_PROVIDER", "gemini")
    order = [primary] + [name for name in factories if name != primary]
    return [(name, factories[name]) for name in order]


def build_embedding_service(config: Dict[str, Any]) -> EmbeddingService:
    """
    Build the embedding service from configuration.

    Raises:
        EmbeddingInitializationError: If no provider could be initialized
    """
    selection = select_embedding_provider(provider_factories(config))
    if not selection.ok:
        raise EmbeddingInitializationError(selection.errors)

    return EmbeddingService(
        selection.provider,
        batch_size=config.get("EMBEDDING_BATCH_SIZE", PROVIDER_BATCH_CEILING),
    )
