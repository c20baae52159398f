"""
Pinecone vector store integration for material chunk embeddings.

One index holds every chunk vector; each logical collection has its own
namespace ("in_stock", "all_fda") and every vector's metadata carries an
availability tag matching that namespace.

INDEX MANAGEMENT:
- Serverless index creation with a dimension check against existing indexes
- Index statistics per namespace

QUERIES:
- Async namespaced queries executed on a thread pool with a timeout
- Query vectors are checked against the index dimension before querying

BATCH OPERATIONS:
- Batch upsert with exponential backoff retry; failed batches are skipped
- Metadata flattening to Pinecone-compatible scalar values
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pinecone import Pinecone, ServerlessSpec

from material_search.exceptions import (
    DimensionMismatchError,
    UpsertError,
    VectorSearchTimeoutError,
    VectorStoreError,
)
from material_search.models import COLLECTION_AVAILABILITY, CollectionType
from material_search.utils import Timer


@dataclass
class VectorMatch:
    """One match returned by a namespaced query."""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    # Pinecone responses are objects in recent SDKs and dicts in older ones
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def flatten_metadata(metadata: Dict[str, Any], max_text_length: int = 1000) -> Dict[str, Any]:
    """Convert metadata values to the scalar types Pinecone accepts."""
    flat: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            flat[key] = ", ".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            flat[key] = value
        else:
            flat[key] = str(value)

    if isinstance(flat.get("text"), str):
        flat["text"] = flat["text"][:max_text_length]
    return flat


class PineconeVectorStore:
    """
    Namespaced Pinecone index for material chunks.

    The client and index handle are created lazily once and shared by all
    requests; the store holds no other mutable state besides the cached
    index dimension.
    """

    def __init__(self, api_key: Optional[str] = None, index_name: str = "raw-materials-stock",
                 cloud: str = "aws", region: str = "us-east-1", metric: str = "cosine",
                 query_timeout: float = 8.0, client: Any = None, index: Any = None,
                 max_workers: int = 4):
        if client is None and index is None and not api_key:
            raise VectorStoreError("PINECONE_API_KEY is not configured")

        self._api_key = api_key
        self.index_name = index_name
        self.cloud = cloud
        self.region = region
        self.metric = metric
        self.query_timeout = query_timeout

        self.pc_client = client
        self._index = index
        self._dimension: Optional[int] = None
        self.thread_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vector-ops")

        # Retry settings for write operations
        self.max_retries = 5
        self.base_delay = 1.0
        self.max_delay = 60.0

    def _initialize_clients(self) -> None:
        try:
            if self.pc_client is None:
                self.pc_client = Pinecone(api_key=self._api_key, pool_threads=4)
            self._index = self.pc_client.Index(self.index_name)
        except Exception as e:
            logger.error("Failed to initialize Pinecone client", error=str(e))
            raise VectorStoreError(f"Client initialization failed: {e}") from e

        logger.info("Pinecone client initialized", index_name=self.index_name)

    @property
    def index(self):
        if self._index is None:
            self._initialize_clients()
        return self._index

    def _exponential_backoff_retry(self, operation: Callable[[], Any], operation_name: str = "operation"):
        """
        Execute operation with exponential backoff retry logic.

        Raises:
            Exception: Last exception encountered if all retries fail
        """
        last_exception = None

        for attempt in range(self.max_retries):
            try:
                return operation()
            except Exception as e:
                last_exception = e
                if attempt == self.max_retries - 1:
                    logger.error(
                        "Operation failed after all retries",
                        operation=operation_name,
                        attempts=self.max_retries,
                        error=str(e)
                    )
                    break

                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                logger.warning(
                    "Operation attempt failed, retrying",
                    operation=operation_name,
                    attempt=attempt + 1,
                    next_delay=delay,
                    error=str(e)
                )
                time.sleep(delay)

        raise last_exception

    def ensure_index(self, dimension: int) -> bool:
        """
        Create the index if missing, or verify the existing index's dimension.

        Args:
            dimension: Embedding dimension the index must have

        Returns:
            bool: True if the index was created, False if it already existed

        Raises:
            DimensionMismatchError: If the existing index has another dimension
            VectorStoreError: If index creation fails
        """
        if self.pc_client is None:
            self._initialize_clients()

        existing = self.pc_client.list_indexes().names()
        if self.index_name in existing:
            description = self.pc_client.describe_index(self.index_name)
            actual = int(_get(description, "dimension"))
            if actual != dimension:
                raise DimensionMismatchError(
                    expected=dimension, actual=actual, context=f"index '{self.index_name}'"
                )
            self._dimension = actual
            logger.info("Pinecone index already exists", index_name=self.index_name, dimension=actual)
            return False

        def _create_index():
            self.pc_client.create_index(
                name=self.index_name,
                dimension=dimension,
                metric=self.metric,
                spec=ServerlessSpec(cloud=self.cloud, region=self.region)
            )

        try:
            self._exponential_backoff_retry(_create_index, operation_name="index_creation")
            self._wait_until_ready()
        except Exception as e:
            logger.error("Failed to create index", index_name=self.index_name, error=str(e))
            raise VectorStoreError(f"Index creation failed: {e}") from e

        self._index = self.pc_client.Index(self.index_name)
        self._dimension = dimension
        logger.info("Created Pinecone index", index_name=self.index_name, dimension=dimension)
        return True

    def _wait_until_ready(self, max_wait_attempts: int = 60, interval: float = 5.0) -> None:
        for _ in range(max_wait_attempts):
            status = _get(self.pc_client.describe_index(self.index_name), "status") or {}
            if _get(status, "ready"):
                return
            time.sleep(interval)
        raise VectorStoreError(
            f"Index '{self.index_name}' not ready after {max_wait_attempts * interval:.0f} seconds"
        )

    async def _run(self, func: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self.thread_pool, func)
        try:
            return await asyncio.wait_for(future, timeout=timeout or self.query_timeout)
        except asyncio.TimeoutError as e:
            raise VectorSearchTimeoutError(
                f"Vector operation timed out after {timeout or self.query_timeout} seconds"
            ) from e

    async def describe_index_stats(self) -> Dict[str, Any]:
        """Index dimension and per-namespace vector counts."""
        try:
            stats = await self._run(self.index.describe_index_stats)
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(f"describe_index_stats failed: {e}") from e

        namespaces = _get(stats, "namespaces") or {}
        return {
            "dimension": _get(stats, "dimension"),
            "total_vector_count": _get(stats, "total_vector_count", 0),
            "namespaces": {
                name: _get(summary, "vector_count", 0) for name, summary in dict(namespaces).items()
            },
        }

    async def get_dimension(self) -> int:
        if self._dimension is None:
            stats = await self.describe_index_stats()
            self._dimension = int(stats["dimension"])
        return self._dimension

    async def query(self, vector: List[float], namespace: str, top_k: int,
                    metadata_filter: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
        """
        Query one namespace.

        Raises:
            DimensionMismatchError: If the vector does not fit the index
            VectorSearchTimeoutError: If the query exceeds query_timeout
            VectorStoreError: If the query fails
        """
        dimension = await self.get_dimension()
        if len(vector) != dimension:
            raise DimensionMismatchError(
                expected=dimension, actual=len(vector), context=f"index '{self.index_name}'"
            )

        query_args = {
            "vector": vector,
            "top_k": top_k,
            "namespace": namespace,
            "include_metadata": True,
        }
        if metadata_filter:
            query_args["filter"] = metadata_filter

        try:
            response = await self._run(lambda: self.index.query(**query_args))
        except VectorStoreError:
            raise
        except Exception as e:
            logger.error("Vector query failed", namespace=namespace, error=str(e))
            raise VectorStoreError(f"Query on namespace '{namespace}' failed: {e}") from e

        return [
            VectorMatch(
                id=_get(match, "id"),
                score=float(_get(match, "score", 0.0) or 0.0),
                metadata=dict(_get(match, "metadata") or {}),
            )
            for match in (_get(response, "matches") or [])
        ]

    def upsert_records(self, namespace: str, records: List[Dict[str, Any]],
                       batch_size: int = 100) -> Dict[str, Any]:
        """
        Batch upsert vectors into a namespace.

        Every record's metadata must carry the availability tag of the
        namespace. Failed batches are logged and skipped.

        Args:
            namespace: "in_stock" or "all_fda"
            records: Dictionaries with 'id', 'values' and 'metadata'
            batch_size: Number of vectors per upsert call

        Returns:
            Dict[str, Any]: Summary of the upsert operation

        Raises:
            UpsertError: If a record's availability does not match the namespace
        """
        expected = COLLECTION_AVAILABILITY[CollectionType(namespace)].value
        vectors = []
        for record in records:
            metadata = flatten_metadata(record.get("metadata", {}))
            if metadata.get("availability") != expected:
                raise UpsertError(
                    f"Record {record.get('id')} has availability "
                    f"{metadata.get('availability')!r}, namespace '{namespace}' requires {expected!r}"
                )
            vectors.append({"id": record["id"], "values": record["values"], "metadata": metadata})

        if not vectors:
            logger.warning("No vectors provided for upsert", namespace=namespace)
            return {"namespace": namespace, "total_vectors": 0, "successful_batches": 0,
                    "failed_batches": 0, "upserted_count": 0}

        total_batches = (len(vectors) + batch_size - 1) // batch_size
        successful_batches = 0
        failed_batches = 0
        upserted_count = 0

        for batch_idx in range(0, len(vectors), batch_size):
            batch = vectors[batch_idx:batch_idx + batch_size]
            batch_num = batch_idx // batch_size + 1

            def _upsert_batch():
                with Timer(f"upsert_{namespace}_{batch_num}"):
                    return self.index.upsert(vectors=batch, namespace=namespace)

            try:
                response = self._exponential_backoff_retry(
                    _upsert_batch, operation_name=f"upsert_{namespace}_{batch_num}"
                )
            except Exception as e:
                failed_batches += 1
                logger.error(
                    "Failed to upsert batch",
                    namespace=namespace,
                    batch=batch_num,
                    total_batches=total_batches,
                    error=str(e)
                )
                continue

            successful_batches += 1
            upserted_count += int(_get(response, "upserted_count", len(batch)) or 0)

        summary = {
            "namespace": namespace,
            "total_vectors": len(vectors),
            "total_batches": total_batches,
            "successful_batches": successful_batches,
            "failed_batches": failed_batches,
            "upserted_count": upserted_count,
        }
        logger.info("Batch upsert completed", **summary)
        return summary

    def delete_namespace(self, namespace: str) -> None:
        """Delete every vector in a namespace (full re-index)."""
        CollectionType(namespace)
        self._exponential_backoff_retry(
            lambda: self.index.delete(delete_all=True, namespace=namespace),
            operation_name=f"delete_{namespace}"
        )
        logger.info("Deleted namespace vectors", namespace=namespace)

    def close(self) -> None:
        self.thread_pool.shutdown(wait=False)
