"""
Indexing pipeline for siftd.

Orchestrates file discovery, change detection, chunking, batched embedding,
index update and persistence. One run at a time per pipeline; a second
request while a run is active is rejected rather than queued.
"""

import concurrent.futures
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping, Optional, Sequence

from .chunkers import ChunkerRegistry
from .config import Config
from .discovery import FileDiscovery, relative_posix
from .embeddings import EmbeddingProvider
from .errors import FileNotIndexableError, IndexingInProgressError, UnreadableFileError
from .index import VectorIndex
from .models import Chunk, ReindexResult, RunSummary
from .progress import ProgressCallback, ProgressReporter, ProgressStage
from .snapshots import SnapshotStore
from .tracker import ChangeTracker

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
UNREADABLE = "unreadable"
FAILED = "failed"
CHANGED = "changed"


@dataclass
class _ScannedFile:
    """Outcome of fingerprinting and chunking one discovered file."""
    rel_path: str
    status: str
    digest: Optional[str] = None
    chunks: list[Chunk] = field(default_factory=list)


def decode_source(data: bytes) -> str:
    """Decode file bytes as UTF-8 text with '\\n' line endings."""
    return data.decode("utf-8", errors="replace").replace("\r\n", "\n")


class IndexingPipeline:
    """
    Brings a VectorIndex up to date with the files under a project root.

    Features:
    - Incremental: unchanged files are skipped by content fingerprint
    - Parallel scanning with deterministic, discovery-ordered results
    - Batched embedding, cancellable between batches
    - Per-file failures are counted, never fatal to the run
    """

    def __init__(
        self,
        config: Config,
        index: VectorIndex,
        provider: EmbeddingProvider,
        registry: Optional[ChunkerRegistry] = None,
        discovery: Optional[FileDiscovery] = None,
        snapshots: Optional[SnapshotStore] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Project configuration
            index: Index to update
            provider: Embedding provider for chunk texts
            registry: Chunker registry (built from config if omitted)
            discovery: File discovery (built from config if omitted)
            snapshots: Snapshot store used by reindex_file
        """
        self.config = config
        self.project_root = config.project_root
        self.index = index
        self.provider = provider
        self.registry = registry or ChunkerRegistry(max_chunk_chars=config.max_chunk_chars)
        self.discovery = discovery or FileDiscovery(
            include_extensions=config.include_extensions,
            exclude_dirs=config.exclude_dirs,
            max_file_size=config.max_file_size,
            respect_gitignore=bool(config.get("indexer", "respect_gitignore", default=True)),
        )
        self.snapshots = snapshots
        self.tracker = ChangeTracker()

        self.batch_size = max(1, int(config.get("embeddings", "batch_size", default=16)))
        self.prune_deleted = bool(config.get("indexer", "prune_deleted", default=True))
        self.parallel_enabled = bool(config.get("performance", "parallel_enabled", default=True))
        self.max_workers = config.get("performance", "max_workers") or min(8, os.cpu_count() or 1)

        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _acquire(self) -> None:
        if not self._run_lock.acquire(blocking=False):
            raise IndexingInProgressError()

    # ===== Full runs =====

    def run(
        self,
        force: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunSummary:
        """
        Index the project.

        Args:
            force: Re-index every file regardless of fingerprints
            progress_callback: Receives ProgressEvents for scanning and embedding
            cancel_event: When set, the run stops before its next embedding
                batch and commits nothing

        Returns:
            RunSummary of the run

        Raises:
            IndexingInProgressError: If another run is active
            DimensionMismatchError: If the provider's vectors do not fit the index
        """
        self._acquire()
        try:
            return self._run(force, progress_callback, cancel_event)
        finally:
            self._run_lock.release()

    def _run(
        self,
        force: bool,
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> RunSummary:
        start_time = time.monotonic()
        files = self.discovery.discover(self.project_root)
        logger.info(f"Found {len(files)} files to index under {self.project_root}")

        stored = self.index.fingerprints
        scanned = self._scan_files(files, stored, force, progress_callback)

        summary = RunSummary(files_total=len(files))
        changed: list[_ScannedFile] = []
        for item in scanned:
            if item.status == SKIPPED:
                summary.skipped += 1
            elif item.status == UNREADABLE:
                summary.unreadable += 1
            elif item.status == FAILED:
                summary.failed += 1
            else:
                changed.append(item)

        chunks = [chunk for item in changed for chunk in item.chunks]
        owners = [i for i, item in enumerate(changed) for _ in item.chunks]
        vectors: list[Optional[list[float]]] = [None] * len(chunks)
        failed_files: set[int] = set()

        reporter = None
        if progress_callback:
            reporter = ProgressReporter(ProgressStage.EMBED, self._batch_count(len(chunks)), progress_callback)

        for batch_start, batch_vectors, error in self._embed_batches(chunks, cancel_event):
            batch_end = batch_start + self.batch_size
            if error is not None:
                batch_files = set(owners[batch_start:batch_end])
                failed_files |= batch_files
                logger.error(
                    f"Embedding batch {batch_start // self.batch_size + 1} failed "
                    f"({len(batch_files)} files affected): {error}"
                )
            else:
                vectors[batch_start:batch_start + len(batch_vectors)] = batch_vectors
            if reporter:
                reporter.update(f"batch {batch_start // self.batch_size + 1}")

        if cancel_event is not None and cancel_event.is_set():
            summary.cancelled = True
            summary.chunks_total = len(self.index)
            summary.duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(f"Indexing cancelled after {summary.duration_ms} ms; nothing committed")
            return summary

        new_chunks: list[Chunk] = []
        new_vectors: list[list[float]] = []
        committed: dict[str, str] = {}
        for i, item in enumerate(changed):
            if i in failed_files:
                continue
            committed[item.rel_path] = item.digest
        for chunk, owner, vector in zip(chunks, owners, vectors):
            if owner not in failed_files:
                new_chunks.append(chunk)
                new_vectors.append(vector)

        stale: set[str] = set()
        if self.prune_deleted:
            stale = self._stale_files({item.rel_path for item in scanned})

        summary.failed += len(failed_files)
        summary.chunks_new = self.index.commit(
            new_chunks, new_vectors, files=committed.keys(), fingerprints=committed, removed_files=stale
        )
        summary.removed = len(stale)
        if stale:
            logger.info(f"Pruned {len(stale)} deleted files from the index")

        self.index.persist(self.config.index_path)

        summary.chunks_total = len(self.index)
        summary.duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            f"Indexing complete: {len(committed)} files indexed, {summary.skipped} skipped, "
            f"{summary.unreadable} unreadable, {summary.failed} failed, {summary.removed} removed, "
            f"{summary.chunks_new} chunks added ({summary.duration_ms} ms)"
        )
        return summary

    def _scan_files(
        self,
        files: list[Path],
        stored: Mapping[str, str],
        force: bool,
        progress_callback: Optional[ProgressCallback],
    ) -> list[_ScannedFile]:
        """Fingerprint and chunk files, returning results in discovery order."""
        reporter = ProgressReporter(ProgressStage.SCAN, len(files), progress_callback) if progress_callback else None

        def scan(file_path: Path) -> _ScannedFile:
            return self._scan_file(file_path, stored, force)

        results = []
        if self.parallel_enabled and len(files) > 1:
            logger.debug(f"Scanning with {self.max_workers} workers")
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                for result in executor.map(scan, files):
                    results.append(result)
                    if reporter:
                        reporter.update(result.rel_path)
        else:
            for file_path in files:
                result = scan(file_path)
                results.append(result)
                if reporter:
                    reporter.update(result.rel_path)
        return results

    def _scan_file(self, file_path: Path, stored: Mapping[str, str], force: bool) -> _ScannedFile:
        rel_path = relative_posix(self.project_root, file_path)

        try:
            data = file_path.read_bytes()
        except OSError as e:
            logger.warning(f"Skipping unreadable file {rel_path}: {e}")
            return _ScannedFile(rel_path, UNREADABLE)

        digest = self.tracker.fingerprint_bytes(data)
        if not self.tracker.should_reindex(file_path, rel_path, stored, force=force, digest=digest):
            logger.debug(f"Skipping unchanged file: {rel_path}")
            return _ScannedFile(rel_path, SKIPPED, digest)

        try:
            chunks = self.registry.chunk(decode_source(data), rel_path)
        except Exception as e:
            logger.error(f"Failed to chunk {rel_path}: {e}")
            return _ScannedFile(rel_path, FAILED, digest)

        return _ScannedFile(rel_path, CHANGED, digest, chunks)

    def _batch_count(self, total: int) -> int:
        return (total + self.batch_size - 1) // self.batch_size

    def _embed_batches(
        self,
        chunks: Sequence[Chunk],
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[tuple[int, list[list[float]], Optional[Exception]]]:
        """
        Embed chunk texts batch by batch.

        Yields:
            (offset of the batch, vectors, error) where error is set and
            vectors empty when the batch failed
        """
        for batch_start in range(0, len(chunks), self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Cancellation requested, stopping before next embedding batch")
                return
            texts = [chunk.text for chunk in chunks[batch_start:batch_start + self.batch_size]]
            try:
                batch_vectors = self.provider.embed_batch(texts)
                if len(batch_vectors) != len(texts):
                    raise ValueError(f"provider returned {len(batch_vectors)} vectors for {len(texts)} texts")
            except Exception as e:
                yield batch_start, [], e
                continue
            yield batch_start, batch_vectors, None

    def _stale_files(self, present: set[str]) -> set[str]:
        """Indexed files that were not discovered in this run."""
        return self.index.file_paths() - present

    # ===== Single files =====

    def reindex_file(self, rel_path: str) -> ReindexResult:
        """
        Re-index one file unconditionally and snapshot it.

        Args:
            rel_path: Project-relative file path

        Returns:
            ReindexResult with the file's new chunk count

        Raises:
            IndexingInProgressError: If a run is active
            FileNotFoundError: If the file does not exist
            FileNotIndexableError: If discovery would skip the file
            UnreadableFileError: If the file cannot be read
        """
        self._acquire()
        try:
            file_path = self.project_root / rel_path
            if not file_path.exists():
                raise FileNotFoundError(f"No such file: {rel_path}")
            if not self.discovery.accepts(self.project_root, file_path):
                raise FileNotIndexableError(rel_path)
            try:
                data = file_path.read_bytes()
            except FileNotFoundError:
                raise
            except OSError as e:
                raise UnreadableFileError(rel_path, str(e)) from e

            chunks = self.registry.chunk(decode_source(data), rel_path)
            vectors: list[list[float]] = []
            for _, batch_vectors, error in self._embed_batches(chunks):
                if error is not None:
                    raise error
                vectors.extend(batch_vectors)

            self.index.commit(
                chunks, vectors, files=[rel_path], fingerprints={rel_path: self.tracker.fingerprint_bytes(data)}
            )
            self.index.persist(self.config.index_path)

            snapshot_id = None
            if self.snapshots is not None:
                snapshot_id = self.snapshots.save(rel_path).id

            logger.info(f"Re-indexed {rel_path}: {len(chunks)} chunks")
            return ReindexResult(
                file=rel_path,
                chunks=len(chunks),
                chunks_total=len(self.index),
                snapshot_id=snapshot_id,
            )
        finally:
            self._run_lock.release()

    def forget_file(self, rel_path: str) -> int:
        """
        Remove a file's entries and fingerprint, then persist.

        Returns:
            Number of entries removed

        Raises:
            IndexingInProgressError: If a run is active
        """
        self._acquire()
        try:
            known = rel_path in self.index.file_paths()
            removed = self.index.remove_files([rel_path])
            if known:
                self.index.persist(self.config.index_path)
                logger.info(f"Removed {rel_path} from the index ({removed} chunks)")
            return removed
        finally:
            self._run_lock.release()
