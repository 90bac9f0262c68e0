"""
Line-accumulating chunking strategy.

Packs whole lines into chunks bounded by a character ceiling. Each chunk is
prefixed with a header naming the file and line range; the header is part of
the embedded text.
"""

import logging

from .base import ChunkStrategy, TextChunk

logger = logging.getLogger(__name__)


def chunk_header(path: str, start_line: int, end_line: int) -> str:
    return f"File: {path}\nLines {start_line}-{end_line}:\n\n"


class LineChunker(ChunkStrategy):
    """
    Splits text on line boundaries into chunks of at most ``max_chunk_size``
    characters (excluding the header).

    A single line longer than the ceiling becomes its own oversized chunk;
    lines are never split. Trailing whitespace-only lines are folded into the
    previous chunk so the chunks cover every line of the file without gaps.
    That fold can take the last chunk past the ceiling, by whitespace only.
    """

    def __init__(self, max_chunk_size: int = 2000):
        """
        Initialize the chunker.

        Args:
            max_chunk_size: Character ceiling for the body of one chunk
        """
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        self.max_chunk_size = max_chunk_size

    def chunk(self, content: str, path: str) -> list[TextChunk]:
        """
        Split content into line-bounded chunks.

        Args:
            content: The file content to chunk
            path: Relative file path for the header

        Returns:
            List of TextChunk objects covering lines 1..N in order
        """
        lines = content.split("\n")
        spans: list[tuple[int, int, str]] = []  # (start_line, end_line, body)

        body = ""
        start_line = 1
        for line_no, line in enumerate(lines, start=1):
            piece = line + "\n"
            if body and len(body) + len(piece) > self.max_chunk_size:
                spans.append((start_line, line_no - 1, body))
                body = ""
                start_line = line_no
            body += piece

        if body.strip():
            spans.append((start_line, len(lines), body))
        elif body and spans:
            prev_start, _, prev_body = spans.pop()
            spans.append((prev_start, len(lines), prev_body + body))

        if not spans:
            # Empty or whitespace-only file: one chunk for the whole file
            return [TextChunk(
                content=chunk_header(path, 1, len(lines)) + content,
                start_line=1,
                end_line=len(lines),
            )]

        chunks = [
            TextChunk(content=chunk_header(path, start, end) + text, start_line=start, end_line=end)
            for start, end, text in spans
        ]
        logger.debug(f"Chunked {path} into {len(chunks)} chunks")
        return chunks
