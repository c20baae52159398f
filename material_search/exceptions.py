"""
Exception hierarchy for the raw materials search core.

Strategy-level failures are converted to warnings by the search service.
Validation errors and dimension mismatches are never retried.
"""

from typing import List, Optional


class MaterialSearchError(Exception):
    """Base class for search core errors."""
    pass


class SearchValidationError(MaterialSearchError, ValueError):
    """Raised when a query or its options are invalid."""
    pass


class SearchUnavailableError(MaterialSearchError):
    """Raised when no search strategy could run."""

    def __init__(self, message: str, failures: Optional[List[str]] = None):
        super().__init__(message)
        self.failures = failures or []


class StrategyUnavailableError(MaterialSearchError):
    """Raised when a single strategy has no backing store configured."""
    pass


class DimensionMismatchError(MaterialSearchError):
    """Raised when an embedding dimension does not match the vector index."""

    def __init__(self, expected: int, actual: int, context: str = "vector index"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch for {context}: expected {expected}, got {actual}"
        )


class EmbeddingError(MaterialSearchError):
    """Raised when embedding generation fails."""
    pass


class EmbeddingDimensionError(EmbeddingError):
    """Raised when a provider returns vectors of an unexpected size."""
    pass


class EmbeddingInitializationError(EmbeddingError):
    """Raised when no embedding provider could be initialized."""

    def __init__(self, errors: dict):
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {error}" for name, error in self.errors.items())
        super().__init__(f"No embedding provider available ({details or 'none configured'})")


class VectorStoreError(MaterialSearchError):
    """Raised when vector store operations fail."""
    pass


class UpsertError(VectorStoreError):
    """Raised when upserting vectors fails."""
    pass


class DocumentStoreError(MaterialSearchError):
    """Raised when document store operations fail."""
    pass


class VectorSearchTimeoutError(VectorStoreError):
    """Raised when a vector query exceeds its timeout."""
    pass
