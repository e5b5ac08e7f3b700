"""
Fallback chunking strategy for unsupported file types.

Cuts files into fixed-size windows of whole lines.
"""

import logging

from ..models import Chunk, ChunkKind
from .base import ChunkStrategy, split_lines

logger = logging.getLogger(__name__)


class FallbackChunker(ChunkStrategy):
    """
    Window-based chunking strategy for plain text and unsupported files.

    Consecutive lines are grouped until adding the next one would exceed
    ``max_chunk_chars`` (counting one newline per line). Windows never split a
    line and never overlap; a single line longer than the budget becomes a
    window of its own.
    """

    def __init__(self, max_chunk_chars: int = 1500):
        """
        Initialize the fallback chunker.

        Args:
            max_chunk_chars: Character budget per window
        """
        if max_chunk_chars < 1:
            raise ValueError("max_chunk_chars must be positive")
        self.max_chunk_chars = max_chunk_chars

    def chunk(self, content: str, path: str) -> list[Chunk]:
        if not content.strip():
            return []

        lines = split_lines(content)
        chunks = []
        window_start = 0
        window_size = 0

        for i, line in enumerate(lines):
            cost = len(line) + 1
            if i > window_start and window_size + cost > self.max_chunk_chars:
                chunks.append(self._window(path, lines, window_start, i - 1))
                window_start = i
                window_size = 0
            window_size += cost

        chunks.append(self._window(path, lines, window_start, len(lines) - 1))

        logger.debug(f"Chunked {path} into {len(chunks)} windows using fallback strategy")
        return chunks

    @staticmethod
    def _window(path: str, lines: list[str], first: int, last: int) -> Chunk:
        start, end = first + 1, last + 1
        return Chunk.from_lines(path, lines, start, end, ChunkKind.BLOCK, name=f"lines {start}-{end}")
