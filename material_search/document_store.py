"""
MongoDB-backed material document store.

Wraps pymongo's AsyncMongoClient for the two logical collections (in-stock
and the FDA catalog). Callers use canonical field names (material_code,
inci_name, benefits, ...); the store maps them onto each collection's source
field names and normalizes every returned document into a MaterialDocument.

All user-supplied terms are regex-escaped before they reach a query.
"""

import re
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import ValidationError
from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from material_search.exceptions import DocumentStoreError
from material_search.models import CollectionType, MaterialDocument, normalize_code, normalize_material


DEFAULT_COLLECTION_NAMES = {
    CollectionType.IN_STOCK: "raw_materials_real_stock",
    CollectionType.ALL_FDA: "raw_materials_console",
}

# Canonical field -> source field names per collection
SOURCE_FIELDS = {
    CollectionType.IN_STOCK: {
        "material_code": ["rm_code"],
        "trade_name": ["trade_name"],
        "inci_name": ["inci_name"],
        "supplier": ["supplier", "company_name"],
        "benefits": ["benefits"],
        "use_cases": ["usecase"],
        "function": ["function"],
        "details": ["details"],
    },
    CollectionType.ALL_FDA: {
        "material_code": ["rm_code"],
        "trade_name": ["trade_name"],
        "inci_name": ["INCI_name"],
        "supplier": ["supplier", "company_name"],
        "benefits": ["benefits", "benefits_cached"],
        "use_cases": ["usecase", "usecase_cached"],
        "function": ["Function"],
        "details": ["Chem_IUPAC_Name_Description"],
    },
}


def _code_regex(code: str) -> str:
    """Anchored pattern matching a code with or without a separator after its prefix."""
    code = normalize_code(code)
    return f"^{re.escape(code[:2])}[-_]?{re.escape(code[2:])}$"


class MaterialStore:
    """
    Read-only access to the material collections.

    The client is created lazily on first use and reused for every request;
    pymongo manages the connection pool.
    """

    def __init__(self, uri: Optional[str] = None, database: str = "rnd_ai",
                 collection_names: Optional[Dict[CollectionType, str]] = None,
                 client: Any = None, server_selection_timeout_ms: int = 5000):
        if client is None and not uri:
            raise DocumentStoreError("MongoDB URI is not configured")

        self._uri = uri
        self._client = client
        self.database_name = database
        self.collection_names = dict(DEFAULT_COLLECTION_NAMES)
        if collection_names:
            self.collection_names.update(collection_names)
        self.server_selection_timeout_ms = server_selection_timeout_ms

    @property
    def client(self):
        if self._client is None:
            self._client = AsyncMongoClient(
                self._uri,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
            logger.info(
                "MongoDB client initialized",
                database=self.database_name,
                collections={c.value: name for c, name in self.collection_names.items()}
            )
        return self._client

    def _collection(self, collection: CollectionType):
        return self.client[self.database_name][self.collection_names[collection]]

    def source_fields(self, collection: CollectionType, fields: Iterable[str]) -> List[str]:
        mapping = SOURCE_FIELDS[collection]
        names: List[str] = []
        for canonical in fields:
            for name in mapping.get(canonical, [canonical]):
                if name not in names:
                    names.append(name)
        return names

    def _normalize_all(self, raw_docs: List[Dict[str, Any]],
                       collection: CollectionType) -> List[MaterialDocument]:
        documents = []
        for raw in raw_docs:
            try:
                documents.append(normalize_material(raw, collection))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed material document",
                    collection=collection.value,
                    document_id=str(raw.get("_id")),
                    error=str(e)
                )
        return documents

    async def _find(self, collection: CollectionType, query: Dict[str, Any],
                    limit: int, sort: Optional[List] = None) -> List[MaterialDocument]:
        try:
            cursor = self._collection(collection).find(query)
            if sort:
                cursor = cursor.sort(sort)
            raw_docs = await cursor.limit(limit).to_list(length=limit)
        except PyMongoError as e:
            logger.error("MongoDB query failed", collection=collection.value, error=str(e))
            raise DocumentStoreError(f"Query on {collection.value} failed: {e}") from e

        return self._normalize_all(raw_docs, collection)

    async def find_by_codes(self, collection: CollectionType, codes: List[str],
                            limit: int = 50) -> List[MaterialDocument]:
        """Exact (case-insensitive, separator-tolerant) lookup by material code."""
        if not codes:
            return []
        query = {"$or": [{"rm_code": {"$regex": _code_regex(code), "$options": "i"}} for code in codes]}
        return await self._find(collection, query, limit)

    async def find_by_fields(self, collection: CollectionType, values: List[str],
                             fields: List[str], limit: int = 50) -> List[MaterialDocument]:
        """Case-insensitive whole-value equality over the given canonical fields."""
        values = [v.strip() for v in values if v and v.strip()]
        if not values:
            return []
        clauses = [
            {name: {"$regex": f"^{re.escape(value)}$", "$options": "i"}}
            for name in self.source_fields(collection, fields)
            for value in values
        ]
        return await self._find(collection, {"$or": clauses}, limit)

    async def find_containing(self, collection: CollectionType, terms: List[str],
                              fields: List[str], limit: int = 50) -> List[MaterialDocument]:
        """Case-insensitive substring match of any term over the given canonical fields."""
        terms = [t.strip() for t in terms if t and t.strip()]
        if not terms:
            return []
        clauses = [
            {name: {"$regex": re.escape(term), "$options": "i"}}
            for name in self.source_fields(collection, fields)
            for term in terms
        ]
        return await self._find(collection, {"$or": clauses}, limit)

    async def find_code_range(self, collection: CollectionType, start: str, end: str,
                              limit: int = 50) -> List[MaterialDocument]:
        """Materials whose code sorts between start and end, inclusive."""
        query = {"rm_code": {"$gte": normalize_code(start), "$lte": normalize_code(end)}}
        return await self._find(collection, query, limit, sort=[("rm_code", ASCENDING)])

    async def count_documents(self, collection: CollectionType,
                              query: Optional[Dict[str, Any]] = None) -> int:
        try:
            return await self._collection(collection).count_documents(query or {})
        except PyMongoError as e:
            raise DocumentStoreError(f"Count on {collection.value} failed: {e}") from e

    async def iter_documents(self, collection: CollectionType,
                             batch_size: int = 500) -> AsyncIterator[MaterialDocument]:
        """Stream every document of a collection, normalized."""
        try:
            cursor = self._collection(collection).find({}).batch_size(batch_size)
            async for raw in cursor:
                for document in self._normalize_all([raw], collection):
                    yield document
        except PyMongoError as e:
            raise DocumentStoreError(f"Scan of {collection.value} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("MongoDB ping failed", error=str(e))
            return False
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
