"""
Structural outline of a single file.

The outline is derived from the same chunkers the index uses, so it lists
exactly the declarations search results can point at. Files without
declarations (Markdown, plain text, or code with nothing declared) get a
single ``file_info`` entry instead.
"""

import logging
import re
from pathlib import PurePosixPath
from typing import Optional

from .chunkers.heuristic import DECORATOR_RE, HEADER_LOOKAHEAD, bracket_balance
from .chunkers.registry import ChunkerKind, ChunkerRegistry, choice_for
from .models import DECLARATION_KINDS, Chunk, ChunkKind, FileOutline, OutlineEntry

logger = logging.getLogger(__name__)

BODY_PREVIEW_LINES = 5
DOCSTRING_LOOKAHEAD = 5
DOCSTRING_MAX_CHARS = 150

_DOCSTRING_QUOTES = ('"""', "'''")
_COMMENT_PREFIXES = ("//", "/*", "*", "#")
_CLASS_HEADER_RE = re.compile(r"^class\s+\w+\s*(?:\((?P<bases>.*)\))?\s*$")


def _python_signature(lines: list[str]) -> tuple[str, int]:
    """Join a (possibly multi-line) Python header; returns (signature, last header index)."""
    first = 0
    while first < len(lines) - 1 and DECORATOR_RE.match(lines[first]):
        first += 1

    header = []
    depth = 0
    last = first
    for j in range(first, min(first + HEADER_LOOKAHEAD, len(lines))):
        header.append(lines[j].strip())
        depth += bracket_balance(lines[j])
        last = j
        if depth <= 0:
            break

    signature = re.sub(r"\s+", " ", " ".join(header)).strip()
    return re.sub(r":\s*$", "", signature), last


def _python_docstring(lines: list[str], after: int) -> Optional[str]:
    for line in lines[after + 1:after + 1 + DOCSTRING_LOOKAHEAD]:
        stripped = line.strip()
        if stripped.startswith(_DOCSTRING_QUOTES) or stripped[1:].startswith(_DOCSTRING_QUOTES):
            text = stripped.lstrip("rRbBuU")
            for quote in _DOCSTRING_QUOTES:
                text = text.replace(quote, "")
            return text.strip()[:DOCSTRING_MAX_CHARS] or None
        if stripped and not stripped.startswith("#"):
            return None
    return None


def _python_bases(signature: str) -> str:
    """Base class list of a class header, empty when there is none."""
    match = _CLASS_HEADER_RE.match(signature)
    if not match or match.group("bases") is None:
        return ""
    return match.group("bases").strip()


def _comment_docstring(file_lines: list[str], line_start: int) -> Optional[str]:
    """First meaningful line of the comment block directly above a declaration."""
    block = []
    k = line_start - 2
    while k >= 0:
        stripped = file_lines[k].strip()
        if not stripped.startswith(_COMMENT_PREFIXES):
            break
        block.append(stripped)
        k -= 1

    for stripped in reversed(block):
        text = stripped.lstrip("/*#").strip()
        if text and not text.startswith("@"):
            return text[:DOCSTRING_MAX_CHARS]
    return None


def _code_signature(lines: list[str]) -> str:
    first = next((line for line in lines if line.strip()), "")
    return first.strip().rstrip("{").strip()


class FileOutliner:
    """Builds outlines from chunker output."""

    def __init__(self, registry: ChunkerRegistry):
        self.registry = registry

    def outline(self, rel_path: str, content: str, include_body: bool = False) -> FileOutline:
        """
        Outline a file's declarations.

        Args:
            rel_path: Project-relative file path
            content: File content
            include_body: Attach the first lines of each declaration

        Returns:
            One entry per declaration in source order, or a single
            ``file_info`` entry when there are none
        """
        file_lines = content.split("\n")
        total_lines = len(content.splitlines())
        extension = PurePosixPath(rel_path).suffix.lower()
        is_python = choice_for(rel_path).kind == ChunkerKind.HEURISTIC

        entries = [
            self._entry(chunk, file_lines, is_python, include_body)
            for chunk in self.registry.chunk(content, rel_path)
            if chunk.kind in DECLARATION_KINDS
        ]

        if not entries:
            entries = [OutlineEntry(
                type="file_info",
                name=PurePosixPath(rel_path).name,
                total_lines=total_lines,
                extension=extension,
            )]

        logger.debug(f"Outlined {rel_path}: {len(entries)} entries")
        return FileOutline(file=rel_path, total_lines=total_lines, outline=entries)

    @staticmethod
    def _entry(chunk: Chunk, file_lines: list[str], is_python: bool, include_body: bool) -> OutlineEntry:
        bases = None
        lines = chunk.text.split("\n")
        if is_python:
            signature, header_end = _python_signature(lines)
            docstring = _python_docstring(lines, header_end)
            if chunk.kind == ChunkKind.CLASS:
                bases = _python_bases(signature)
        else:
            signature = _code_signature(lines)
            docstring = _comment_docstring(file_lines, chunk.line_start)

        return OutlineEntry(
            type=chunk.kind.value,
            name=chunk.name,
            line_start=chunk.line_start,
            line_end=chunk.line_end,
            signature=signature,
            bases=bases,
            docstring=docstring,
            body_preview="\n".join(lines[:BODY_PREVIEW_LINES]) if include_body else None,
        )
