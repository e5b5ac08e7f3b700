"""
Chunking strategies for siftd.

Provides different strategies for splitting files into semantic chunks:
- TreeSitterChunker: AST-based chunking for JS/TS/TSX, Go
- HeuristicPythonChunker: Indentation-based chunking for Python
- EmbeddedCodeChunker: Script/style regions of HTML, Vue, Svelte
- MarkdownChunker: Header-based chunking for Markdown
- FallbackChunker: Line-window chunking for other files
"""

from .base import ChunkStrategy
from .treesitter import TreeSitterChunker
from .heuristic import HeuristicPythonChunker
from .embedded import EmbeddedCodeChunker
from .markdown import MarkdownChunker
from .fallback import FallbackChunker
from .registry import ChunkerKind, ChunkerRegistry, EXTENSION_TABLE

__all__ = [
    "ChunkStrategy",
    "TreeSitterChunker",
    "HeuristicPythonChunker",
    "EmbeddedCodeChunker",
    "MarkdownChunker",
    "FallbackChunker",
    "ChunkerKind",
    "ChunkerRegistry",
    "EXTENSION_TABLE",
]
