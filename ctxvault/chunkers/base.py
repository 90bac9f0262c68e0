"""
Base chunking strategy interface for ctxvault.

Defines the chunk value type and the abstract base class that chunking
strategies implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class TextChunk:
    """
    One chunk of a file.

    Attributes:
        content: Text sent for embedding and stored, including the header
        start_line: First line covered (1-indexed)
        end_line: Last line covered (1-indexed, inclusive)
    """
    content: str
    start_line: int
    end_line: int


class ChunkStrategy(ABC):
    """
    Abstract base class for chunking strategies.
    """

    @abstractmethod
    def chunk(self, content: str, path: str) -> list[TextChunk]:
        """
        Split content into chunks.

        Args:
            content: The file content to chunk
            path: Relative file path, used in chunk headers

        Returns:
            Chunks in ascending line order; never empty
        """
        pass
