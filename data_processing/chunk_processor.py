"""
Material Chunk Processor

Splits a MaterialDocument into independently embeddable chunks before
indexing. Each chunk covers one facet of the material and carries the
metadata the search service relies on at query time:

- chunk_type: one of ChunkType (primary_identifier, benefits, details, ...)
- field_source: canonical fields the chunk text was built from
- priority / search_boost: chunk-type priority and best field weight
- availability: tag matching the namespace the chunk is written to

Chunk ids are "{material_code}_{chunk_type}"; split detail chunks append
"_{n}".
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from material_search.models import (
    COLLECTION_AVAILABILITY,
    Chunk,
    ChunkType,
    CollectionType,
    MaterialDocument,
)

from .utils.chunk_utils import chunk_text
from .utils.text_cleaner import clean_field_text, contains_thai


DEFAULT_FIELD_WEIGHTS = {
    "material_code": 1.0,
    "trade_name": 0.95,
    "inci_name": 0.9,
    "supplier": 0.75,
    "company_name": 0.7,
    "benefits": 0.85,
    "use_cases": 0.8,
    "details": 0.8,
    "cost": 0.65,
    "category": 0.7,
    "function": 0.75,
}

CHUNK_PRIORITIES = {
    ChunkType.PRIMARY_IDENTIFIER: 1.0,
    ChunkType.CODE_EXACT_MATCH: 1.0,
    ChunkType.TECHNICAL_SPECS: 0.9,
    ChunkType.COMMERCIAL_INFO: 0.8,
    ChunkType.BENEFITS: 0.85,
    ChunkType.USE_CASES: 0.75,
    ChunkType.DETAILS: 0.7,
    ChunkType.COMBINED_CONTEXT: 0.85,
    ChunkType.THAI_OPTIMIZED: 0.8,
}


@dataclass
class ChunkingConfig:
    """Chunk sizes (characters), overlap and weighting tables."""
    max_chunk_size: int = 500
    min_chunk_size: int = 50
    overlap: int = 50
    field_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))
    chunk_priorities: Dict[ChunkType, float] = field(default_factory=lambda: dict(CHUNK_PRIORITIES))
    include_thai_chunk: bool = True


def _join(values: Iterable[str]) -> str:
    return ", ".join(v for v in (clean_field_text(v) for v in values) if v)


def _labelled(parts: List[tuple]) -> str:
    return " | ".join(f"{label}: {value}" for label, value in parts if value)


class MaterialChunker:
    """Builds weighted chunks from material documents."""

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()

    def chunk(self, document: MaterialDocument,
              namespace: Optional[CollectionType] = None) -> List[Chunk]:
        """
        Split one document into chunks.

        Args:
            document: Canonical material document
            namespace: Target namespace; defaults to the document's collection

        Returns:
            List[Chunk]: Chunks in a stable order, identifier chunks first
        """
        namespace = namespace or document.source_collection
        base_metadata = self._base_metadata(document, namespace)
        code = document.material_code
        trade_name = clean_field_text(document.trade_name)
        inci_name = clean_field_text(document.inci_name)

        chunks: List[Chunk] = []

        def add(chunk_type: ChunkType, text: str, fields: List[str], suffix: Optional[str] = None):
            text = clean_field_text(text)
            if not text:
                return
            chunk_id = f"{code}_{chunk_type.value}" + (f"_{suffix}" if suffix else "")
            priority = self.config.chunk_priorities.get(chunk_type, 0.7)
            metadata = dict(base_metadata)
            metadata.update({
                "chunk_type": chunk_type.value,
                "field_source": fields,
                "priority": priority,
                "search_boost": max(self.config.field_weights.get(f, 0.5) for f in fields),
                "text": text,
            })
            chunks.append(Chunk(
                id=chunk_id,
                text=text,
                chunk_type=chunk_type,
                field_source=fields,
                priority=priority,
                metadata=metadata,
            ))

        add(
            ChunkType.PRIMARY_IDENTIFIER,
            _labelled([("Material code", code), ("Trade name", trade_name), ("INCI name", inci_name)]),
            ["material_code", "trade_name", "inci_name"],
        )

        code_variants = [code, f"{code[:2]}-{code[2:]}", code.lower()] if len(code) > 2 else [code]
        add(
            ChunkType.CODE_EXACT_MATCH,
            " ".join(code_variants + ([trade_name] if trade_name else [])),
            ["material_code"],
        )

        # INCI alone is already covered by the identifier chunk
        if document.function or document.category:
            technical = _labelled([
                ("INCI name", inci_name),
                ("Function", clean_field_text(document.function)),
                ("Category", clean_field_text(document.category)),
            ])
            add(ChunkType.TECHNICAL_SPECS, f"{trade_name or code} | {technical}",
                ["inci_name", "function", "category"])

        commercial = _labelled([
            ("Supplier", clean_field_text(document.supplier)),
            ("Company", clean_field_text(document.company_name)),
            ("Cost", document.cost_text or (f"{document.cost:g}" if document.cost is not None else None)),
        ])
        if commercial:
            add(ChunkType.COMMERCIAL_INFO, f"{trade_name or code} | {commercial}",
                ["supplier", "company_name", "cost"])

        if document.benefits:
            add(ChunkType.BENEFITS, f"Benefits of {trade_name or code}: {_join(document.benefits)}",
                ["benefits"])

        if document.use_cases:
            add(ChunkType.USE_CASES, f"Applications of {trade_name or code}: {_join(document.use_cases)}",
                ["use_cases"])

        details = clean_field_text(document.details)
        pieces = self._split_details(details)
        for index, piece in enumerate(pieces, 1):
            add(ChunkType.DETAILS, f"{trade_name or code}: {piece}", ["details"],
                suffix=str(index) if len(pieces) > 1 else None)

        combined = _labelled([
            ("Material", code),
            ("Trade name", trade_name),
            ("INCI", inci_name),
            ("Supplier", clean_field_text(document.supplier)),
            ("Benefits", _join(document.benefits)),
            ("Applications", _join(document.use_cases)),
        ])
        add(ChunkType.COMBINED_CONTEXT, combined[:self.config.max_chunk_size],
            ["material_code", "trade_name", "inci_name", "supplier", "benefits", "use_cases"])

        if self.config.include_thai_chunk and self._has_thai(document):
            thai = " ".join(part for part in [
                f"รหัสวัตถุดิบ {code}",
                f"ชื่อการค้า {trade_name}" if trade_name else "",
                f"ชื่อ INCI {inci_name}" if inci_name else "",
                f"ประโยชน์ {_join(document.benefits)}" if document.benefits else "",
                f"การใช้งาน {_join(document.use_cases)}" if document.use_cases else "",
                f"รายละเอียด {details}" if details else "",
            ] if part)
            add(ChunkType.THAI_OPTIMIZED, thai[:self.config.max_chunk_size],
                ["material_code", "trade_name", "benefits", "use_cases", "details"])

        return chunks

    def chunk_documents(self, documents: Iterable[MaterialDocument],
                        namespace: Optional[CollectionType] = None) -> List[Chunk]:
        chunks: List[Chunk] = []
        for document in documents:
            chunks.extend(self.chunk(document, namespace))
        return chunks

    def _split_details(self, details: str) -> List[str]:
        if not details:
            return []
        pieces = chunk_text(details, max_chars=self.config.max_chunk_size, overlap_chars=self.config.overlap)
        # A trailing fragment below the minimum is folded into its predecessor
        if len(pieces) > 1 and len(pieces[-1]) < self.config.min_chunk_size:
            tail = pieces.pop()
            pieces[-1] = f"{pieces[-1]} {tail}"
        return pieces

    @staticmethod
    def _has_thai(document: MaterialDocument) -> bool:
        values = [document.trade_name, document.details] + document.benefits + document.use_cases
        return any(contains_thai(v) for v in values if v)

    @staticmethod
    def _base_metadata(document: MaterialDocument, namespace: CollectionType) -> Dict[str, Any]:
        # Keys follow the in-stock document shape so vector metadata
        # normalizes back into a MaterialDocument unchanged
        return {
            "rm_code": document.material_code,
            "trade_name": document.trade_name,
            "inci_name": document.inci_name,
            "supplier": document.supplier,
            "company_name": document.company_name,
            "rm_cost": document.cost_text if document.cost_text is not None else document.cost,
            "benefits": list(document.benefits),
            "usecase": list(document.use_cases),
            "function": document.function,
            "details": (document.details or "")[:500] or None,
            "category": document.category,
            "source_collection": namespace.value,
            "availability": COLLECTION_AVAILABILITY[namespace].value,
        }


def get_chunk_stats(chunks: List[Chunk]) -> Dict[str, Any]:
    """
    Summarize a list of chunks.

    Returns:
        Dict with total count, counts per chunk type and length statistics
    """
    if not chunks:
        return {"total_chunks": 0, "by_type": {}, "average_length": 0, "min_length": 0, "max_length": 0}

    by_type: Dict[str, int] = {}
    for chunk in chunks:
        by_type[chunk.chunk_type.value] = by_type.get(chunk.chunk_type.value, 0) + 1

    lengths = [chunk.character_count for chunk in chunks]
    return {
        "total_chunks": len(chunks),
        "by_type": by_type,
        "average_length": round(sum(lengths) / len(lengths), 1),
        "min_length": min(lengths),
        "max_length": max(lengths),
        "average_priority": round(sum(c.priority for c in chunks) / len(chunks), 3),
    }
