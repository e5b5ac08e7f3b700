"""
In-memory vector index for siftd.

Entries are kept in an immutable snapshot: the chunks, their vectors as one
numpy matrix, and the committed file fingerprints. Writers build a new
snapshot and swap it in under a lock; readers grab the current snapshot
reference and never block, so a search running during a rebuild sees the
state from before the rebuild until it commits.

Search is an exact cosine linear scan over every entry.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union
import numpy as np
from pydantic import ValidationError

from .errors import CacheInvalidError, DimensionMismatchError, NotIndexedError
from .models import Chunk, FileFingerprint, IndexEntry, IndexStats, PersistedIndex, SearchHit
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

ChunkPredicate = Callable[[Chunk], bool]


class IndexState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class _IndexSnapshot:
    """One immutable generation of the index contents."""
    chunks: tuple[Chunk, ...] = ()
    matrix: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.float32))
    norms: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    fingerprints: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    dimension: Optional[int] = None

    @classmethod
    def build(cls, chunks: Sequence[Chunk], matrix: np.ndarray, fingerprints: Mapping[str, str],
              dimension: Optional[int]) -> "_IndexSnapshot":
        return cls(
            chunks=tuple(chunks),
            matrix=matrix,
            norms=np.linalg.norm(matrix, axis=1) if len(chunks) else np.zeros(0, dtype=np.float32),
            fingerprints=MappingProxyType(dict(fingerprints)),
            dimension=dimension,
        )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.shape[0], vb.shape[0])
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def make_filter(file_filter: Optional[str] = None, ext_filter: Optional[str] = None) -> Optional[ChunkPredicate]:
    """
    Build a search predicate from optional path and extension filters.

    Args:
        file_filter: Substring the chunk's file path must contain
        ext_filter: Extension the file path must end with ('py' or '.py')

    Returns:
        Predicate, or None when neither filter is set
    """
    if not file_filter and not ext_filter:
        return None

    suffix = None
    if ext_filter:
        suffix = ext_filter.lower() if ext_filter.startswith(".") else f".{ext_filter.lower()}"

    def predicate(chunk: Chunk) -> bool:
        if file_filter and file_filter not in chunk.file_path:
            return False
        if suffix and not chunk.file_path.lower().endswith(suffix):
            return False
        return True

    return predicate


def _root_identity(root: Union[str, Path]) -> str:
    return str(Path(root).resolve())


class VectorIndex:
    """
    Chunk embeddings with exact cosine search and JSON persistence.

    The index starts EMPTY, becomes READY after the first upsert or a
    successful load, and is LOADING while a persisted file is being read.
    Searching anything but a READY index raises NotIndexedError.
    """

    def __init__(self, project_root: Optional[Union[str, Path]] = None, provider: Optional[str] = None):
        """
        Args:
            project_root: Root identity recorded when persisting
            provider: Embedding provider signature recorded when persisting
        """
        self.project_root = _root_identity(project_root) if project_root is not None else None
        self.provider = provider
        self._snapshot = _IndexSnapshot()
        self._state = IndexState.EMPTY
        self._write_lock = threading.Lock()

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == IndexState.READY

    @property
    def dimension(self) -> Optional[int]:
        return self._snapshot.dimension

    @property
    def fingerprints(self) -> Mapping[str, str]:
        """Committed fingerprints of the current snapshot (read-only view)."""
        return self._snapshot.fingerprints

    def __len__(self) -> int:
        return len(self._snapshot.chunks)

    def chunks(self, file_path: Optional[str] = None) -> list[Chunk]:
        """All chunks in insertion order, optionally limited to one file."""
        chunks = self._snapshot.chunks
        if file_path is None:
            return list(chunks)
        return [c for c in chunks if c.file_path == file_path]

    def file_paths(self) -> set[str]:
        """Files that have entries or fingerprints in the index."""
        snapshot = self._snapshot
        return {c.file_path for c in snapshot.chunks} | set(snapshot.fingerprints)

    # ===== Writes =====

    def upsert(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]],
               files: Optional[Iterable[str]] = None) -> int:
        """
        Replace the entries of every touched file with the given ones.

        Prior entries are removed for each file in ``files`` and for each
        file any new chunk belongs to, so a file re-indexed down to zero
        chunks is cleared when passed in ``files``.

        Args:
            chunks: New chunks
            vectors: One vector per chunk, same order
            files: Additional files whose old entries must be dropped

        Returns:
            Number of entries added

        Raises:
            ValueError: If chunks and vectors differ in count
            DimensionMismatchError: If any vector disagrees with the index
                dimension (or with the other new vectors); nothing is changed
        """
        return self.commit(chunks, vectors, files=files)

    def commit(
        self,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
        files: Optional[Iterable[str]] = None,
        fingerprints: Optional[Mapping[str, str]] = None,
        removed_files: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Apply one indexing run as a single new generation.

        Entries of touched files are replaced, ``fingerprints`` are recorded
        and ``removed_files`` lose both entries and fingerprints. Readers see
        either none or all of it.

        Returns:
            Number of entries added

        Raises:
            ValueError: If chunks and vectors differ in count
            DimensionMismatchError: If any vector disagrees with the index
                dimension; nothing is changed
        """
        if len(chunks) != len(vectors):
            raise ValueError(f"Got {len(chunks)} chunks but {len(vectors)} vectors")
        removed_set = set(removed_files or ())

        with self._write_lock:
            current = self._snapshot
            dimension = current.dimension
            for vector in vectors:
                if dimension is None:
                    dimension = len(vector)
                elif len(vector) != dimension:
                    raise DimensionMismatchError(dimension, len(vector))

            replaced = set(files or ()) | {c.file_path for c in chunks} | removed_set
            keep = [i for i, c in enumerate(current.chunks) if c.file_path not in replaced]

            kept_chunks = [current.chunks[i] for i in keep]
            if chunks:
                new_rows = np.asarray(vectors, dtype=np.float32).reshape(len(vectors), dimension)
                kept_rows = current.matrix[keep] if keep else np.zeros((0, dimension), dtype=np.float32)
                matrix = np.vstack([kept_rows, new_rows])
            else:
                matrix = current.matrix[keep] if keep else np.zeros((0, dimension or 0), dtype=np.float32)

            new_fingerprints = {k: v for k, v in current.fingerprints.items() if k not in removed_set}
            new_fingerprints.update(fingerprints or {})

            removed = len(current.chunks) - len(keep)
            self._snapshot = _IndexSnapshot.build(
                kept_chunks + list(chunks), matrix, new_fingerprints, dimension
            )
            self._state = IndexState.READY

        logger.debug(
            f"Committed {len(chunks)} entries for {len(replaced)} files "
            f"(replaced {removed}, {len(removed_set)} files dropped)"
        )
        return len(chunks)

    def commit_fingerprints(self, mapping: Mapping[str, str]) -> None:
        """Record fingerprints for files whose entries are now current."""
        if not mapping:
            return
        with self._write_lock:
            current = self._snapshot
            fingerprints = dict(current.fingerprints)
            fingerprints.update(mapping)
            self._snapshot = _IndexSnapshot(
                chunks=current.chunks,
                matrix=current.matrix,
                norms=current.norms,
                fingerprints=MappingProxyType(fingerprints),
                dimension=current.dimension,
            )

    def remove_files(self, paths: Iterable[str]) -> int:
        """
        Drop every entry and fingerprint belonging to ``paths``.

        Returns:
            Number of entries removed
        """
        targets = set(paths)
        if not targets:
            return 0
        with self._write_lock:
            current = self._snapshot
            keep = [i for i, c in enumerate(current.chunks) if c.file_path not in targets]
            removed = len(current.chunks) - len(keep)
            fingerprints = {k: v for k, v in current.fingerprints.items() if k not in targets}
            if removed == 0 and len(fingerprints) == len(current.fingerprints):
                return 0
            matrix = current.matrix[keep] if keep else np.zeros((0, current.dimension or 0), dtype=np.float32)
            self._snapshot = _IndexSnapshot.build(
                [current.chunks[i] for i in keep], matrix, fingerprints, current.dimension
            )
        logger.debug(f"Removed {removed} entries for {len(targets)} files")
        return removed

    def clear(self) -> None:
        """Forget everything and return to the EMPTY state."""
        with self._write_lock:
            self._snapshot = _IndexSnapshot()
            self._state = IndexState.EMPTY

    # ===== Reads =====

    def search(self, query_vector: Sequence[float], limit: int = 8,
               predicate: Optional[ChunkPredicate] = None) -> list[SearchHit]:
        """
        Rank entries by cosine similarity to ``query_vector``.

        Args:
            query_vector: Query embedding
            limit: Maximum number of hits
            predicate: Optional chunk filter applied before ranking

        Returns:
            Hits by descending score; equal scores keep insertion order

        Raises:
            NotIndexedError: If the index is not READY
            DimensionMismatchError: If the query has the wrong length
        """
        if self._state != IndexState.READY:
            raise NotIndexedError()

        snapshot = self._snapshot
        if limit <= 0 or not snapshot.chunks:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape[0] != snapshot.dimension:
            raise DimensionMismatchError(snapshot.dimension, query.shape[0])

        if predicate is None:
            candidates = np.arange(len(snapshot.chunks))
        else:
            candidates = np.fromiter(
                (i for i, c in enumerate(snapshot.chunks) if predicate(c)), dtype=np.int64
            )
            if candidates.size == 0:
                return []

        scores = self._cosine_scores(snapshot.matrix[candidates], snapshot.norms[candidates], query)
        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            SearchHit(chunk=snapshot.chunks[int(candidates[i])], score=float(scores[i]))
            for i in order
        ]

    @staticmethod
    def _cosine_scores(matrix: np.ndarray, norms: np.ndarray, query: np.ndarray) -> np.ndarray:
        query_norm = np.linalg.norm(query)
        denom = norms * query_norm
        dots = matrix @ query
        safe = np.where(denom > 0, denom, 1.0)
        return np.clip(np.where(denom > 0, dots / safe, 0.0), -1.0, 1.0)

    def stats(self) -> IndexStats:
        """Summarise the current snapshot."""
        snapshot = self._snapshot
        by_kind: dict[str, int] = {}
        by_ext: dict[str, int] = {}
        for chunk in snapshot.chunks:
            by_kind[chunk.kind.value] = by_kind.get(chunk.kind.value, 0) + 1
            ext = chunk.extension or "(none)"
            by_ext[ext] = by_ext.get(ext, 0) + 1

        return IndexStats(
            total_chunks=len(snapshot.chunks),
            files_tracked=len(snapshot.fingerprints),
            is_indexed=self._state == IndexState.READY,
            dimension=snapshot.dimension,
            provider=self.provider,
            project_root=self.project_root,
            by_chunk_type=by_kind,
            by_extension=by_ext,
        )

    # ===== Persistence =====

    def persist(self, path: Union[str, Path]) -> None:
        """
        Write the current snapshot to ``path`` as JSON.

        The document is written to a temporary file next to ``path`` and
        renamed over it, so readers never see a partial file.
        """
        snapshot = self._snapshot
        rows = snapshot.matrix.tolist() if snapshot.chunks else []
        document = PersistedIndex(
            version=FORMAT_VERSION,
            created=time.time(),
            project_root=self.project_root or "",
            provider=self.provider or "",
            dimension=snapshot.dimension,
            fingerprints=[
                FileFingerprint(file_path=file_path, content_hash=digest)
                for file_path, digest in sorted(snapshot.fingerprints.items())
            ],
            entries=[IndexEntry(chunk=c, vector=v) for c, v in zip(snapshot.chunks, rows)],
        )
        atomic_write_text(Path(path), document.model_dump_json())
        logger.info(f"Persisted {len(rows)} entries to {path}")

    def load(self, path: Union[str, Path], root: Union[str, Path], provider: str) -> bool:
        """
        Replace the contents with a persisted index, if it is usable.

        Args:
            path: Persisted index file
            root: Project root the index must have been built for
            provider: Embedding provider signature the index must match

        Returns:
            True when loaded; False when the file is missing, corrupt, or
            built for another format version, root or provider. A rejected
            load leaves the index exactly as it was.
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"No persisted index at {path}")
            return False

        with self._write_lock:
            previous_state = self._state
            self._state = IndexState.LOADING
            try:
                snapshot = self._read_persisted(path, _root_identity(root), provider)
            except CacheInvalidError as e:
                logger.warning(f"Ignoring persisted index at {path}: {e}")
                self._state = previous_state
                return False

            self._snapshot = snapshot
            self.project_root = _root_identity(root)
            self.provider = provider
            self._state = IndexState.READY

        logger.info(f"Loaded {len(snapshot.chunks)} entries from {path}")
        return True

    @staticmethod
    def _read_persisted(path: Path, root: str, provider: str) -> _IndexSnapshot:
        """
        Raises:
            CacheInvalidError: For any reason the file cannot be used
        """
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CacheInvalidError(f"unreadable: {e}") from e

        try:
            document = PersistedIndex.model_validate_json(raw)
        except ValidationError as e:
            raise CacheInvalidError(f"corrupt: {e.error_count()} validation errors") from e

        if document.version != FORMAT_VERSION:
            raise CacheInvalidError(f"format version {document.version}, expected {FORMAT_VERSION}")
        if document.project_root != root:
            raise CacheInvalidError(f"built for {document.project_root}, not {root}")
        if document.provider != provider:
            raise CacheInvalidError(f"built with {document.provider}, not {provider}")

        dimension = document.dimension
        for entry in document.entries:
            if dimension is None:
                dimension = len(entry.vector)
            if len(entry.vector) != dimension:
                raise CacheInvalidError(
                    f"entry {entry.chunk.id} has dimension {len(entry.vector)}, expected {dimension}"
                )

        if document.entries:
            matrix = np.asarray([e.vector for e in document.entries], dtype=np.float32)
        else:
            matrix = np.zeros((0, dimension or 0), dtype=np.float32)
        fingerprints = {f.file_path: f.content_hash for f in document.fingerprints}
        return _IndexSnapshot.build(
            [e.chunk for e in document.entries], matrix, fingerprints, dimension
        )
