"""
Pattern-based chunking strategy for Python.

Python is chunked by recognising ``def``/``async def``/``class`` headers and
following indentation, which keeps chunking independent of the interpreter
version the project targets and tolerant of files that do not parse.
"""

import logging
import re
from dataclasses import dataclass

from ..models import Chunk, ChunkKind
from .base import ChunkStrategy, last_content_line, split_lines, whole_file_chunk

logger = logging.getLogger(__name__)

DECLARATION_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?:(?:async[ \t]+)?def[ \t]+(?P<func>\w+)|class[ \t]+(?P<cls>\w+))"
)
DECORATOR_RE = re.compile(r"^[ \t]*@")

# A header whose brackets are still open after this many lines is cut at its first line
HEADER_LOOKAHEAD = 20

TAB_SIZE = 8


def indentation(line: str) -> int:
    """Width of a line's leading whitespace, with tabs expanded."""
    expanded = line.expandtabs(TAB_SIZE)
    return len(expanded) - len(expanded.lstrip())


def _strip_comment(line: str) -> str:
    """Drop a trailing '#' comment, ignoring '#' inside simple string literals."""
    quote = None
    escaped = False
    for i, ch in enumerate(line):
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
        elif quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "#":
            return line[:i]
    return line


def bracket_balance(line: str) -> int:
    code = _strip_comment(line)
    return sum(code.count(c) for c in "([{") - sum(code.count(c) for c in ")]}")


@dataclass
class _Declaration:
    name: str
    is_class: bool
    indent: int
    start: int  # 1-indexed, decorators included
    end: int = 0
    kind: ChunkKind = ChunkKind.FUNCTION


class HeuristicPythonChunker(ChunkStrategy):
    """
    Indentation-driven chunking strategy for Python source.

    Each declaration's chunk runs from its first decorator to the last
    non-blank line indented deeper than the declaration itself. Methods and
    nested functions get chunks of their own alongside their container.
    Content before the first declaration becomes a header chunk, and a file
    with no declarations becomes a single module chunk.
    """

    def chunk(self, content: str, path: str) -> list[Chunk]:
        if not content.strip():
            return []

        lines = split_lines(content)
        declarations = self._find_declarations(lines)

        if not declarations:
            logger.debug(f"No declarations found in {path}, using single chunk")
            return whole_file_chunk(path, lines)

        chunks = []
        first_start = declarations[0].start
        if first_start > 1 and any(line.strip() for line in lines[:first_start - 1]):
            header_end = last_content_line(lines, 1, first_start - 1)
            chunks.append(Chunk.from_lines(path, lines, 1, header_end, ChunkKind.HEADER))

        for decl in declarations:
            chunks.append(Chunk.from_lines(path, lines, decl.start, decl.end, decl.kind, decl.name))

        logger.debug(f"Extracted {len(chunks)} chunks from {path} using indentation heuristics")
        return chunks

    def _find_declarations(self, lines: list[str]) -> list[_Declaration]:
        declarations: list[_Declaration] = []
        open_scopes: list[_Declaration] = []

        for i, line in enumerate(lines):
            match = DECLARATION_RE.match(line)
            if not match:
                continue

            indent = indentation(line)
            header_end = self._header_end(lines, i)
            decl = _Declaration(
                name=match.group("cls") or match.group("func"),
                is_class=match.group("cls") is not None,
                indent=indent,
                start=self._decorated_start(lines, i, indent) + 1,
            )
            decl.end = self._body_end(lines, header_end, indent) + 1

            while open_scopes and (open_scopes[-1].end < i + 1 or open_scopes[-1].indent >= indent):
                open_scopes.pop()
            parent = open_scopes[-1] if open_scopes else None

            if decl.is_class:
                decl.kind = ChunkKind.CLASS
            elif parent is not None and parent.is_class:
                decl.kind = ChunkKind.METHOD
            else:
                decl.kind = ChunkKind.FUNCTION

            declarations.append(decl)
            open_scopes.append(decl)

        return declarations

    @staticmethod
    def _header_end(lines: list[str], start: int) -> int:
        """0-indexed line on which the declaration header closes its brackets."""
        depth = 0
        for j in range(start, min(start + HEADER_LOOKAHEAD, len(lines))):
            depth += bracket_balance(lines[j])
            if depth <= 0:
                return j
        return start

    @staticmethod
    def _decorated_start(lines: list[str], start: int, indent: int) -> int:
        """Walk upwards over decorators sitting directly above the declaration."""
        first = start
        k = start - 1
        while k >= 0 and DECORATOR_RE.match(lines[k]) and indentation(lines[k]) == indent:
            first = k
            k -= 1
        return first

    @staticmethod
    def _body_end(lines: list[str], header_end: int, indent: int) -> int:
        """0-indexed last non-blank line indented deeper than the declaration."""
        end = header_end
        for k in range(header_end + 1, len(lines)):
            line = lines[k]
            if not line.strip():
                continue
            if indentation(line) > indent:
                end = k
                continue
            break
        return end

