#!/usr/bin/env python3
"""
Index raw material documents from MongoDB into Pinecone.

This script:
1. Reads every document of the selected collection(s) from MongoDB
2. Splits each material into weighted chunks
3. Embeds the chunks with the configured provider (Gemini or OpenAI)
4. Upserts the vectors into the matching namespace ("in_stock" / "all_fda")

Usage:
    python scripts/index_materials.py [--collection in_stock] [--reindex] [--limit 100] [--dry-run]

Options:
    --collection    Collection to index: in_stock, all_fda or both (default: both)
    --reindex       Delete the namespace vectors before upserting
    --limit         Maximum number of documents read per collection
    --batch-size    Number of vectors per upsert call (default: 100)
    --dry-run       Chunk documents and print statistics without embedding
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List

from loguru import logger
from tqdm import tqdm

# Add the project root to the path to import the service packages
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from data_processing import ChunkingConfig, MaterialChunker, get_chunk_stats
from material_search.document_store import MaterialStore
from material_search.embeddings import build_embedding_service
from material_search.exceptions import MaterialSearchError
from material_search.indexer import MaterialIndexer
from material_search.models import CollectionType
from material_search.utils import ConfigurationError, initialize_app
from material_search.vector import PineconeVectorStore


def selected_collections(name: str) -> List[CollectionType]:
    if name == "both":
        return list(CollectionType)
    return [CollectionType(name)]


def build_indexer(config: Dict[str, Any], batch_size: int) -> MaterialIndexer:
    if not config["MONGODB_URI"] or not config["PINECONE_API_KEY"]:
        raise ConfigurationError("Indexing requires both MONGODB_URI and PINECONE_API_KEY")

    store = MaterialStore(
        uri=config["MONGODB_URI"],
        database=config["MONGODB_DATABASE"],
        collection_names={
            CollectionType.IN_STOCK: config["MONGODB_IN_STOCK_COLLECTION"],
            CollectionType.ALL_FDA: config["MONGODB_ALL_FDA_COLLECTION"],
        },
    )
    vector_store = PineconeVectorStore(
        api_key=config["PINECONE_API_KEY"],
        index_name=config["PINECONE_INDEX_NAME"],
        cloud=config["PINECONE_CLOUD"],
        region=config["PINECONE_REGION"],
    )
    return MaterialIndexer(
        store=store,
        chunker=MaterialChunker(ChunkingConfig()),
        embeddings=build_embedding_service(config),
        vector_store=vector_store,
        upsert_batch_size=batch_size,
    )


async def dry_run(indexer: MaterialIndexer, collections: List[CollectionType], limit: int) -> None:
    for collection in collections:
        documents = await indexer.load_documents(collection, limit)
        stats = get_chunk_stats(indexer.chunker.chunk_documents(documents, collection))
        print(f"\n{collection.value}: {len(documents)} documents")
        print(f"  Total chunks: {stats['total_chunks']}")
        print(f"  Average length: {stats['average_length']} characters")
        for chunk_type, count in sorted(stats["by_type"].items()):
            print(f"  {chunk_type}: {count}")


async def run(args: argparse.Namespace) -> int:
    config = initialize_app()
    collections = selected_collections(args.collection)
    indexer = build_indexer(config, args.batch_size)

    try:
        if args.dry_run:
            await dry_run(indexer, collections, args.limit)
            return 0

        summaries = []
        for collection in tqdm(collections, desc="Indexing collections", unit="collection"):
            summaries.append(
                await indexer.index_collection(collection, reindex=args.reindex, limit=args.limit)
            )
    finally:
        await indexer.store.close()
        indexer.vector_store.close()

    failed = False
    for summary in summaries:
        print(
            f"{summary['namespace']}: {summary['documents']} documents, {summary['chunks']} chunks, "
            f"{summary['upserted']} upserted, {summary['dropped_chunks']} dropped"
        )
        failed = failed or summary["failed_batches"] > 0 or summary["dropped_chunks"] > 0
    return 1 if failed else 0


def main():
    """Main function to run the indexing process."""
    parser = argparse.ArgumentParser(
        description="Index raw material documents into Pinecone",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/index_materials.py --collection in_stock --reindex
  python scripts/index_materials.py --dry-run --limit 50
        """
    )
    parser.add_argument(
        "--collection",
        choices=["in_stock", "all_fda", "both"],
        default="both",
        help="Collection to index (default: both)"
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Delete the namespace vectors before upserting"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of documents read per collection"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Batch size for uploading vectors (default: 100)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Chunk documents and print statistics without embedding"
    )
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args)))
    except (ConfigurationError, MaterialSearchError) as e:
        logger.error("Indexing failed", error=str(e))
        print(f"Indexing failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
