"""
Utilities package for indexing-time text processing.

- text_cleaner: cleaning and normalizing material field text
- chunk_utils: character-based chunking with overlap
"""

from .text_cleaner import clean_field_text, contains_thai
from .chunk_utils import chunk_text

__all__ = [
    'clean_field_text',
    'contains_thai',
    'chunk_text'
]
