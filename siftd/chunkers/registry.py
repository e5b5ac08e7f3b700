"""
Chunker selection by file extension.

The extension table is static: every extension maps to exactly one strategy,
and anything missing from the table is chunked by fixed windows.
"""

import logging
import threading
from enum import Enum
from pathlib import PurePosixPath
from typing import NamedTuple, Optional

from ..models import Chunk
from .base import ChunkStrategy, unique_chunks
from .embedded import EmbeddedCodeChunker
from .fallback import FallbackChunker
from .heuristic import HeuristicPythonChunker
from .markdown import MarkdownChunker
from .treesitter import TreeSitterChunker

logger = logging.getLogger(__name__)


class ChunkerKind(str, Enum):
    """Family of chunking strategy."""
    STRUCTURED = "structured"
    HEURISTIC = "heuristic"
    EMBEDDED = "embedded"
    MARKDOWN = "markdown"
    FALLBACK = "fallback"


class ChunkerChoice(NamedTuple):
    kind: ChunkerKind
    language: Optional[str] = None


EXTENSION_TABLE: dict[str, ChunkerChoice] = {
    ".py": ChunkerChoice(ChunkerKind.HEURISTIC, "python"),
    ".pyw": ChunkerChoice(ChunkerKind.HEURISTIC, "python"),
    ".js": ChunkerChoice(ChunkerKind.STRUCTURED, "javascript"),
    ".jsx": ChunkerChoice(ChunkerKind.STRUCTURED, "javascript"),
    ".mjs": ChunkerChoice(ChunkerKind.STRUCTURED, "javascript"),
    ".cjs": ChunkerChoice(ChunkerKind.STRUCTURED, "javascript"),
    ".ts": ChunkerChoice(ChunkerKind.STRUCTURED, "typescript"),
    ".tsx": ChunkerChoice(ChunkerKind.STRUCTURED, "tsx"),
    ".go": ChunkerChoice(ChunkerKind.STRUCTURED, "go"),
    ".html": ChunkerChoice(ChunkerKind.EMBEDDED),
    ".htm": ChunkerChoice(ChunkerKind.EMBEDDED),
    ".vue": ChunkerChoice(ChunkerKind.EMBEDDED),
    ".svelte": ChunkerChoice(ChunkerKind.EMBEDDED),
    ".md": ChunkerChoice(ChunkerKind.MARKDOWN),
    ".markdown": ChunkerChoice(ChunkerKind.MARKDOWN),
}

FALLBACK_CHOICE = ChunkerChoice(ChunkerKind.FALLBACK)


def choice_for(path: str) -> ChunkerChoice:
    """Strategy family and grammar for a file path."""
    return EXTENSION_TABLE.get(PurePosixPath(path).suffix.lower(), FALLBACK_CHOICE)


class ChunkerRegistry:
    """
    Hands out one strategy instance per (kind, language), created on first use.

    Tree-sitter grammars are only loaded when a file that needs them is seen.
    Safe to share between threads.
    """

    def __init__(self, max_chunk_chars: int = 1500):
        self.max_chunk_chars = max_chunk_chars
        self._chunkers: dict[ChunkerChoice, ChunkStrategy] = {}
        self._lock = threading.Lock()

    def get_chunker(self, path: str) -> ChunkStrategy:
        choice = choice_for(path)
        chunker = self._chunkers.get(choice)
        if chunker is None:
            with self._lock:
                chunker = self._chunkers.get(choice)
                if chunker is None:
                    chunker = self._create(choice)
                    self._chunkers[choice] = chunker
        return chunker

    def chunk(self, content: str, path: str) -> list[Chunk]:
        """
        Chunk a file with the strategy its extension selects.

        Returns:
            Chunks in source order with unique ids
        """
        return unique_chunks(self.get_chunker(path).chunk(content, path))

    def _create(self, choice: ChunkerChoice) -> ChunkStrategy:
        logger.debug(f"Creating {choice.kind.value} chunker (language={choice.language})")
        if choice.kind == ChunkerKind.STRUCTURED:
            return TreeSitterChunker(choice.language, max_chunk_chars=self.max_chunk_chars)
        if choice.kind == ChunkerKind.HEURISTIC:
            return HeuristicPythonChunker()
        if choice.kind == ChunkerKind.EMBEDDED:
            return EmbeddedCodeChunker(max_chunk_chars=self.max_chunk_chars)
        if choice.kind == ChunkerKind.MARKDOWN:
            return MarkdownChunker()
        return FallbackChunker(max_chunk_chars=self.max_chunk_chars)
