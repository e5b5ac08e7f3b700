"""
Chunking strategy for markup files with embedded code.

HTML, Vue and Svelte files carry their logic inside ``<script>`` and
``<style>`` blocks. Each block is chunked with the strategy for its language
and the resulting line numbers are shifted into the enclosing file.
"""

import logging
import re
from typing import Optional

from ..models import Chunk, ChunkKind
from .base import ChunkStrategy, split_lines
from .fallback import FallbackChunker
from .treesitter import TreeSitterChunker

logger = logging.getLogger(__name__)

REGION_RE = re.compile(
    r"<(?P<tag>script|style)\b(?P<attrs>[^>]*)>(?P<body>.*?)</(?P=tag)\s*>",
    re.IGNORECASE | re.DOTALL,
)
SRC_ATTR_RE = re.compile(r"\bsrc\s*=", re.IGNORECASE)
LANG_ATTR_RE = re.compile(r"\blang\s*=\s*[\"']?(?P<lang>[\w-]+)", re.IGNORECASE)
TYPE_ATTR_RE = re.compile(r"\btype\s*=\s*[\"']?(?P<type>[\w/+.-]+)", re.IGNORECASE)

_SCRIPT_MIME_TYPES = {"text/javascript", "application/javascript", "module", "text/babel", "text/jsx"}
_TS_LANGS = {"ts", "typescript"}


class EmbeddedCodeChunker(ChunkStrategy):
    """
    Region-based chunking strategy for HTML-like files.

    Inline scripts are chunked structurally (TypeScript when the block says
    ``lang="ts"``), styles and non-JavaScript scripts by windows. Scripts
    loaded with ``src=`` hold no code and are skipped. A file without any
    region is chunked by windows as a whole.
    """

    def __init__(self, max_chunk_chars: int = 1500):
        self.max_chunk_chars = max_chunk_chars
        self.fallback_chunker = FallbackChunker(max_chunk_chars=max_chunk_chars)
        self._script_chunkers: dict[str, TreeSitterChunker] = {}

    def chunk(self, content: str, path: str) -> list[Chunk]:
        if not content.strip():
            return []

        outer_lines = split_lines(content)
        chunks: list[Chunk] = []
        regions = 0

        for match in REGION_RE.finditer(content):
            tag = match.group("tag").lower()
            attrs = match.group("attrs")
            if tag == "script" and SRC_ATTR_RE.search(attrs):
                continue

            body = match.group("body")
            if not body.strip():
                continue
            regions += 1

            # Body line 1 sits on the same line as the opening tag
            offset = content.count("\n", 0, match.start("body"))
            inner_chunker = self._chunker_for(tag, attrs)
            for inner in inner_chunker.chunk(body, path):
                chunks.append(self._shift(inner, offset, path, outer_lines))

        if not regions:
            logger.debug(f"No script or style regions in {path}, using fallback chunker")
            return self.fallback_chunker.chunk(content, path)

        chunks.sort(key=lambda c: (c.line_start, -c.line_end))
        logger.debug(f"Extracted {len(chunks)} chunks from {regions} embedded regions in {path}")
        return chunks

    def _chunker_for(self, tag: str, attrs: str) -> ChunkStrategy:
        if tag != "script":
            return self.fallback_chunker

        language = self._script_language(attrs)
        if language is None:
            return self.fallback_chunker
        if language not in self._script_chunkers:
            self._script_chunkers[language] = TreeSitterChunker(language, max_chunk_chars=self.max_chunk_chars)
        return self._script_chunkers[language]

    @staticmethod
    def _script_language(attrs: str) -> Optional[str]:
        """Grammar for an inline script, or None when it is not JavaScript-like."""
        lang_match = LANG_ATTR_RE.search(attrs)
        if lang_match:
            lang = lang_match.group("lang").lower()
            if lang in _TS_LANGS:
                return "typescript"
            if lang in ("tsx",):
                return "tsx"
            return "javascript"

        type_match = TYPE_ATTR_RE.search(attrs)
        if type_match:
            mime = type_match.group("type").lower()
            if mime in ("text/typescript", "application/typescript"):
                return "typescript"
            if mime not in _SCRIPT_MIME_TYPES:
                return None
        return "javascript"

    @staticmethod
    def _shift(inner: Chunk, offset: int, path: str, outer_lines: list[str]) -> Chunk:
        start = inner.line_start + offset
        end = min(inner.line_end + offset, len(outer_lines))
        name = f"lines {start}-{end}" if inner.kind == ChunkKind.BLOCK else inner.name
        return Chunk.from_lines(path, outer_lines, start, end, inner.kind, name)
