"""
Chunking strategies for ctxvault.

- LineChunker: whole-line accumulation up to a character ceiling
"""

from .base import ChunkStrategy, TextChunk
from .lines import LineChunker

__all__ = [
    "ChunkStrategy",
    "TextChunk",
    "LineChunker",
]
