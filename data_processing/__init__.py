"""
Data Processing Module for the raw materials search service

Indexing-time helpers that turn material documents into weighted chunks
ready for embedding.

Main Components:
- chunk_processor: MaterialChunker and chunk statistics
- utils.text_cleaner: field text cleaning
- utils.chunk_utils: character-based chunking with overlap
"""

__version__ = "1.0.0"

from .chunk_processor import (
    CHUNK_PRIORITIES,
    DEFAULT_FIELD_WEIGHTS,
    ChunkingConfig,
    MaterialChunker,
    get_chunk_stats,
)

__all__ = [
    'CHUNK_PRIORITIES',
    'DEFAULT_FIELD_WEIGHTS',
    'ChunkingConfig',
    'MaterialChunker',
    'get_chunk_stats'
]
