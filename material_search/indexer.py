"""
Indexing pipeline: MongoDB documents -> chunks -> embeddings -> Pinecone.

Each logical collection is written to its own namespace. The index is
created (or its dimension verified) before anything is embedded, so a
provider/index mismatch fails before any API cost is incurred.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from data_processing import MaterialChunker, get_chunk_stats
from material_search.document_store import MaterialStore
from material_search.embeddings import EmbeddingService
from material_search.exceptions import DocumentStoreError
from material_search.models import Chunk, CollectionType, MaterialDocument
from material_search.utils import Timer
from material_search.vector import PineconeVectorStore


class MaterialIndexer:
    """Chunks, embeds and upserts material documents."""

    def __init__(self, store: Optional[MaterialStore], chunker: MaterialChunker,
                 embeddings: EmbeddingService, vector_store: PineconeVectorStore,
                 upsert_batch_size: int = 100, embed_batch_size: int = 200):
        self.store = store
        self.chunker = chunker
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.upsert_batch_size = upsert_batch_size
        self.embed_batch_size = embed_batch_size

    async def load_documents(self, collection: CollectionType,
                             limit: Optional[int] = None) -> List[MaterialDocument]:
        if self.store is None:
            raise DocumentStoreError("Document store not configured")

        documents = []
        async for document in self.store.iter_documents(collection):
            documents.append(document)
            if limit is not None and len(documents) >= limit:
                break
        return documents

    def build_records(self, chunks: List[Chunk], embeddings: List[Optional[List[float]]]) -> List[Dict[str, Any]]:
        """Pair chunks with their vectors; chunks whose embedding was dropped are skipped."""
        return [
            {"id": chunk.id, "values": vector, "metadata": chunk.metadata}
            for chunk, vector in zip(chunks, embeddings)
            if vector is not None
        ]

    async def index_collection(self, collection: CollectionType,
                               documents: Optional[Iterable[MaterialDocument]] = None,
                               reindex: bool = False, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Index one collection into its namespace.

        Args:
            collection: Collection (and namespace) to index
            documents: Documents to index; read from MongoDB when omitted
            reindex: Delete the namespace before upserting
            limit: Maximum number of documents read from MongoDB

        Returns:
            Summary with document, chunk, dropped and upserted counts

        Raises:
            DimensionMismatchError: If the index dimension differs from the provider's
        """
        namespace = collection.value
        await asyncio.to_thread(self.vector_store.ensure_index, self.embeddings.dimensions())

        if documents is None:
            documents = await self.load_documents(collection, limit)
        documents = list(documents)

        if reindex:
            await asyncio.to_thread(self.vector_store.delete_namespace, namespace)

        with Timer(f"index_{namespace}") as timer:
            chunks = self.chunker.chunk_documents(documents, collection)
            logger.info("Chunked documents", namespace=namespace, **get_chunk_stats(chunks))

            upserted = 0
            dropped = 0
            failed_batches = 0
            for start in range(0, len(chunks), self.embed_batch_size):
                batch = chunks[start:start + self.embed_batch_size]
                result = await self.embeddings.embed_best_effort([chunk.text for chunk in batch])
                dropped += result.dropped_count

                records = self.build_records(batch, result.embeddings)
                if not records:
                    continue
                summary = await asyncio.to_thread(
                    self.vector_store.upsert_records, namespace, records, self.upsert_batch_size
                )
                upserted += summary["upserted_count"]
                failed_batches += summary["failed_batches"]

        summary = {
            "namespace": namespace,
            "documents": len(documents),
            "chunks": len(chunks),
            "dropped_chunks": dropped,
            "upserted": upserted,
            "failed_batches": failed_batches,
            "duration_ms": timer.duration_ms,
        }
        logger.info("Indexed collection", **summary)
        return summary

    async def index_all(self, reindex: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return [
            await self.index_collection(collection, reindex=reindex, limit=limit)
            for collection in CollectionType
        ]
