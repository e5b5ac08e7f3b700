"""
Base chunking strategy interface for siftd.

Defines the abstract base class that all chunking strategies implement, plus
the line helpers they share.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..models import Chunk, ChunkKind

logger = logging.getLogger(__name__)


class ChunkStrategy(ABC):
    """
    Abstract base class for chunking strategies.

    Different strategies are used for different file types (AST-based for
    languages with a grammar, pattern-based for Python, windowed for
    everything else). A strategy never raises on text input: content it
    cannot structure degrades to coarser chunks.
    """

    @abstractmethod
    def chunk(self, content: str, path: str) -> list[Chunk]:
        """
        Split content into ordered chunks.

        Args:
            content: The file content to chunk ('\\n' line endings)
            path: Project-relative file path, '/' separated

        Returns:
            Chunks ordered by start line, each carrying the exact source text
            of its line range
        """


def split_lines(content: str) -> list[str]:
    """Split content into lines, dropping blank lines at the end of the file."""
    lines = content.split("\n")
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def whole_file_chunk(path: str, lines: list[str], kind: ChunkKind = ChunkKind.MODULE,
                     name: Optional[str] = None) -> list[Chunk]:
    """One chunk spanning every line, or nothing for an empty file."""
    if not lines:
        return []
    return [Chunk.from_lines(path, lines, 1, len(lines), kind, name)]


def last_content_line(lines: list[str], start: int, end: int) -> int:
    """
    Last 1-indexed line in ``start``..``end`` that is not blank.

    Returns ``start`` when every line in the range is blank.
    """
    for line_no in range(end, start - 1, -1):
        if lines[line_no - 1].strip():
            return line_no
    return start


def unique_chunks(chunks: Iterable[Chunk]) -> list[Chunk]:
    """
    Drop chunks whose id repeats an earlier one.

    Ids derive from (file, start line), so two declarations opening on the
    same line collide; the first one produced (the outer one) is kept.
    """
    seen: set[str] = set()
    result = []
    for chunk in chunks:
        if chunk.id in seen:
            logger.debug(f"Dropping duplicate chunk at {chunk.file_path}:{chunk.line_start}")
            continue
        seen.add(chunk.id)
        result.append(chunk)
    return result
