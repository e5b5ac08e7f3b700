"""
Data models for siftd.

Defines Pydantic models for code chunks, index entries, the persisted cache
document, and the structured results returned by project operations.
"""

import datetime
import hashlib
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class ChunkKind(str, Enum):
    """Kind of source region a chunk covers."""
    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    INTERFACE = "interface"
    TYPE = "type"
    HEADER = "header"
    SECTION = "section"
    BLOCK = "block"
    MODULE = "module"


# Kinds that name a declaration and show up in outlines
DECLARATION_KINDS = frozenset({
    ChunkKind.FUNCTION,
    ChunkKind.METHOD,
    ChunkKind.CLASS,
    ChunkKind.INTERFACE,
    ChunkKind.TYPE,
})


def chunk_id(file_path: str, line_start: int) -> str:
    """Derive the stable identity of a chunk from its file and first line."""
    return hashlib.sha256(f"{file_path}:{line_start}".encode("utf-8")).hexdigest()[:16]


class Chunk(BaseModel):
    """
    A named, line-ranged slice of a source file.

    This is the unit of indexing and retrieval. ``text`` is always the exact
    source slice for ``line_start``..``line_end`` (1-indexed, inclusive).
    """
    id: str = Field(description="Stable identity derived from file_path and line_start")
    name: Optional[str] = Field(default=None, description="Declaration or section name")
    kind: ChunkKind = Field(description="Kind of region")
    file_path: str = Field(description="File path relative to project root, '/' separated")
    line_start: int = Field(ge=1, description="First line (1-indexed)")
    line_end: int = Field(ge=1, description="Last line (1-indexed, inclusive)")
    text: str = Field(description="Exact source text for the line range")

    @model_validator(mode="after")
    def _check_range(self) -> "Chunk":
        if self.line_start > self.line_end:
            raise ValueError(
                f"line_start ({self.line_start}) is after line_end ({self.line_end})"
            )
        return self

    @classmethod
    def from_lines(
        cls,
        file_path: str,
        lines: list[str],
        line_start: int,
        line_end: int,
        kind: ChunkKind,
        name: Optional[str] = None,
    ) -> "Chunk":
        """Build a chunk whose text is sliced from ``lines`` (1-indexed range)."""
        return cls(
            id=chunk_id(file_path, line_start),
            name=name,
            kind=kind,
            file_path=file_path,
            line_start=line_start,
            line_end=line_end,
            text="\n".join(lines[line_start - 1:line_end]),
        )

    @property
    def extension(self) -> str:
        """Lowercased file extension including the dot, or '' when absent."""
        return PurePosixPath(self.file_path).suffix.lower()


class IndexEntry(BaseModel):
    """A chunk paired with its embedding vector."""
    chunk: Chunk
    vector: list[float]


class FileFingerprint(BaseModel):
    """Content digest of one indexed file."""
    file_path: str
    content_hash: str


class PersistedIndex(BaseModel):
    """On-disk representation of a vector index."""
    version: int
    created: float
    project_root: str
    provider: str
    dimension: Optional[int] = None
    fingerprints: list[FileFingerprint] = Field(default_factory=list)
    entries: list[IndexEntry] = Field(default_factory=list)


class SearchHit(BaseModel):
    """A search result: a chunk and its cosine similarity to the query."""
    chunk: Chunk
    score: float = Field(description="Cosine similarity (-1 to 1)")

    def __str__(self) -> str:
        """Format search hit for display."""
        return (
            f"{self.chunk.file_path}:{self.chunk.line_start}-{self.chunk.line_end} "
            f"({self.score:.3f})\n{self.chunk.text[:100]}..."
        )


class RunSummary(BaseModel):
    """Outcome of one indexing run."""
    files_total: int = 0
    chunks_new: int = 0
    chunks_total: int = 0
    skipped: int = 0
    unreadable: int = 0
    failed: int = 0
    removed: int = 0
    duration_ms: int = 0
    cancelled: bool = False

    def __str__(self) -> str:
        """Format run summary for display."""
        lines = [
            f"Files discovered: {self.files_total}",
            f"New chunks: {self.chunks_new}",
            f"Total chunks: {self.chunks_total}",
            f"Skipped (unchanged): {self.skipped}",
        ]
        if self.unreadable:
            lines.append(f"Unreadable: {self.unreadable}")
        if self.failed:
            lines.append(f"Failed: {self.failed}")
        if self.removed:
            lines.append(f"Removed (deleted files): {self.removed}")
        lines.append(f"Duration: {self.duration_ms} ms")
        if self.cancelled:
            lines.append("Cancelled before commit")
        return "\n".join(lines)


class ReindexResult(BaseModel):
    """Outcome of re-indexing a single file."""
    file: str
    chunks: int
    chunks_total: int
    snapshot_id: Optional[str] = None


class IndexStats(BaseModel):
    """Statistics about the indexed codebase."""
    total_chunks: int = 0
    files_tracked: int = 0
    is_indexed: bool = False
    dimension: Optional[int] = None
    provider: Optional[str] = None
    project_root: Optional[str] = None
    by_chunk_type: dict[str, int] = Field(default_factory=dict)
    by_extension: dict[str, int] = Field(default_factory=dict)

    def __str__(self) -> str:
        """Format stats for display."""
        lines = [
            f"Indexed: {'yes' if self.is_indexed else 'no'}",
            f"Files tracked: {self.files_tracked}",
            f"Total chunks: {self.total_chunks}",
        ]
        if self.by_extension:
            lines.append("Extensions:")
            for ext, count in sorted(self.by_extension.items(), key=lambda x: -x[1]):
                lines.append(f"  {ext}: {count}")
        return "\n".join(lines)


class GrepMatch(BaseModel):
    """A single exact-match hit."""
    file: str
    line_number: int
    match: str
    context: str


class GrepResult(BaseModel):
    """All matches for one grep call."""
    pattern: str
    matches: list[GrepMatch] = Field(default_factory=list)
    total: int = 0
    truncated: bool = False


class OutlineEntry(BaseModel):
    """One structural element of a file outline."""
    type: str
    name: Optional[str] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    signature: Optional[str] = None
    bases: Optional[str] = None
    docstring: Optional[str] = None
    body_preview: Optional[str] = None
    total_lines: Optional[int] = None
    extension: Optional[str] = None


class FileOutline(BaseModel):
    """Structural outline of a file."""
    file: str
    total_lines: int
    outline: list[OutlineEntry] = Field(default_factory=list)


class SnapshotInfo(BaseModel):
    """Metadata about one stored snapshot."""
    id: str
    file_path: str
    timestamp: datetime.datetime
    size_bytes: int


class FileHistory(BaseModel):
    """Snapshots of one file, newest first."""
    file: str
    snapshots: list[SnapshotInfo] = Field(default_factory=list)
    total: int = 0


class DiffResult(BaseModel):
    """Line diff between two versions of a file."""
    file: str
    old_label: str
    new_label: str
    additions: int = 0
    deletions: int = 0
    unified_text: str = ""
