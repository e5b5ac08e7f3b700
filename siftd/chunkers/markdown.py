"""
Markdown chunking strategy.

Uses header-based chunking to split Markdown documents into sections.
"""

import re
import logging
from typing import Optional

from ..models import Chunk, ChunkKind
from .base import ChunkStrategy, last_content_line, split_lines, whole_file_chunk

logger = logging.getLogger(__name__)

HEADER_RE = re.compile(r"^(#{1,6})\s+(.+)$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker(ChunkStrategy):
    """
    Header-based chunking strategy for Markdown files.

    Splits Markdown documents by ATX headers (# through ######), creating
    one chunk per section. Each chunk includes the header and all content
    until the next header. Lines inside fenced code blocks are never treated
    as headers.
    """

    def chunk(self, content: str, path: str) -> list[Chunk]:
        """
        Split Markdown by header hierarchy.

        Args:
            content: The Markdown content
            path: Project-relative file path

        Returns:
            One section chunk per header, preceded by the preamble when it
            has content
        """
        if not content.strip():
            return []

        lines = split_lines(content)
        chunks = []

        current_start = 1
        header_name: Optional[str] = None
        fence: Optional[str] = None

        for i, line in enumerate(lines, 1):
            fence_match = FENCE_RE.match(line)
            if fence_match:
                marker = fence_match.group(1)
                if fence is None:
                    fence = marker
                elif fence == marker:
                    fence = None
                continue
            if fence is not None:
                continue

            header_match = HEADER_RE.match(line)
            if header_match:
                if i > current_start:
                    self._add_section(chunks, path, lines, current_start, i - 1, header_name)
                header_name = header_match.group(2).strip().rstrip("#").strip()
                current_start = i

        self._add_section(chunks, path, lines, current_start, len(lines), header_name)

        if header_name is None:
            # No headers found - return whole file as one chunk
            logger.debug(f"No headers found in {path}, using single chunk")
            return whole_file_chunk(path, lines)

        logger.debug(f"Extracted {len(chunks)} sections from {path}")
        return chunks

    @staticmethod
    def _add_section(chunks: list[Chunk], path: str, lines: list[str], start: int, end: int,
                     name: Optional[str]) -> None:
        """Append the section spanning ``start``..``end`` unless it is blank."""
        if not any(line.strip() for line in lines[start - 1:end]):
            return
        end = last_content_line(lines, start, end)
        chunks.append(Chunk.from_lines(path, lines, start, end, ChunkKind.SECTION, name))
