"""
Text chunking utilities for long material descriptions.

Sizes are measured in characters rather than words because Thai text
does not separate words with spaces.
"""

import re
from typing import List


def split_into_sentences(text: str) -> List[str]:
    """
    Split text into sentences.

    English sentences end with . ! or ?; Thai sentences are separated by
    spaces, so any whitespace after Thai text also ends a sentence.

    Args:
        text (str): Input text

    Returns:
        List[str]: List of sentence strings
    """
    sentences = re.split('(?<=[.!?])\\s+|(?<=[\u0e00-\u0e7f])\\s+(?=[\u0e00-\u0e7f])', text)
    return [s.strip() for s in sentences if s.strip()]


def hard_split(piece: str, max_chars: int) -> List[str]:
    """Split a piece longer than max_chars on spaces, or mid-text when it has none."""
    if len(piece) <= max_chars:
        return [piece]

    parts = []
    remaining = piece
    while len(remaining) > max_chars:
        cut = remaining.rfind(' ', 0, max_chars)
        if cut <= 0:
            cut = max_chars
        parts.append(remaining[:cut].strip())
        remaining = remaining[cut:].strip()
    if remaining:
        parts.append(remaining)
    return parts


def overlap_tail(text: str, overlap_chars: int) -> str:
    """Last overlap_chars characters of text, starting at a space when possible."""
    if overlap_chars <= 0 or len(text) <= overlap_chars:
        return text if overlap_chars > 0 else ""
    tail = text[-overlap_chars:]
    space = tail.find(' ')
    if 0 <= space < len(tail) - 1:
        tail = tail[space + 1:]
    return tail.strip()


def create_chunks_with_overlap(text_pieces: List[str],
                               max_chars: int = 500,
                               overlap_chars: int = 50) -> List[str]:
    """
    Pack text pieces into chunks of at most max_chars, each new chunk
    starting with the tail of the previous one.

    Args:
        text_pieces (List[str]): Sentences or other text pieces
        max_chars (int): Maximum characters per chunk
        overlap_chars (int): Characters carried over between chunks

    Returns:
        List[str]: List of chunk strings
    """
    # Leave room for the overlap so a carried tail plus one piece still fits
    piece_limit = max_chars - overlap_chars if max_chars > overlap_chars * 2 else max_chars
    pieces: List[str] = []
    for piece in text_pieces:
        pieces.extend(hard_split(piece, piece_limit))

    chunks: List[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current} {piece}".strip() if current else piece
        if len(candidate) > max_chars and current:
            chunks.append(current)
            tail = overlap_tail(current, overlap_chars)
            current = f"{tail} {piece}".strip() if tail else piece
            if len(current) > max_chars:
                current = piece
        else:
            current = candidate

    if current:
        chunks.append(current)
    return chunks


def chunk_text(text: str, max_chars: int = 500, overlap_chars: int = 50) -> List[str]:
    """
    Chunk text into pieces of at most max_chars with overlap.

    Args:
        text (str): Input text to chunk
        max_chars (int): Maximum characters per chunk
        overlap_chars (int): Characters to overlap between consecutive chunks

    Returns:
        List[str]: List of text chunks
    """
    if not text or not text.strip():
        return []
    if len(text) <= max_chars:
        return [text.strip()]
    return create_chunks_with_overlap(split_into_sentences(text), max_chars, overlap_chars)
