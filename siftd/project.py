"""
Project facade for siftd.

A Project owns everything tied to one root: its configuration, vector index,
pipeline, snapshot store and embedding provider. Surfaces (CLI, MCP server,
file watcher) talk to a Project, never to module-level state, so several
projects can live in one process.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from .chunkers import ChunkerRegistry
from .config import Config
from .diff import DiffEngine
from .discovery import FileDiscovery, relative_posix
from .embeddings import EmbeddingProvider, SentenceTransformerProvider
from .errors import ConfigurationError, NotIndexedError
from .grep import CodeGrep
from .index import VectorIndex, make_filter
from .models import (
    DiffResult,
    FileHistory,
    FileOutline,
    GrepResult,
    IndexStats,
    ReindexResult,
    RunSummary,
    SearchHit,
)
from .outline import FileOutliner
from .pipeline import IndexingPipeline, decode_source
from .progress import ProgressCallback
from .snapshots import SnapshotRef, SnapshotStore

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Config], EmbeddingProvider]


def default_provider(config: Config) -> EmbeddingProvider:
    """Sentence-transformers provider configured from the ``[embeddings]`` table."""
    return SentenceTransformerProvider(
        model_name=config.get("embeddings", "model", default="all-MiniLM-L6-v2"),
        device=config.get("embeddings", "device"),
        batch_size=int(config.get("embeddings", "batch_size", default=16)),
    )


class Project:
    """
    One indexed source tree and the operations callers can run against it.

    Results are pydantic models; formatting them is up to the caller.
    """

    def __init__(
        self,
        root: Union[str, Path],
        provider: Optional[EmbeddingProvider] = None,
        config: Optional[Config] = None,
        load_cache: bool = True,
    ):
        """
        Args:
            root: Project root directory
            provider: Embedding provider (built from config if omitted)
            config: Project configuration (loaded from root if omitted)
            load_cache: Load the persisted index when it is usable

        Raises:
            ConfigurationError: If root is not an existing directory
        """
        root_path = Path(root).expanduser()
        if not root_path.is_dir():
            raise ConfigurationError(f"Project root is not a directory: {root}")

        self.config = config or Config(root_path)
        self.root = self.config.project_root
        self.provider = provider or default_provider(self.config)

        self.registry = ChunkerRegistry(max_chunk_chars=self.config.max_chunk_chars)
        self.discovery = FileDiscovery(
            include_extensions=self.config.include_extensions,
            exclude_dirs=self.config.exclude_dirs,
            max_file_size=self.config.max_file_size,
            respect_gitignore=bool(self.config.get("indexer", "respect_gitignore", default=True)),
        )
        self.index = VectorIndex(self.root, self.provider.signature)
        self.snapshots = SnapshotStore(self.root, self.config.snapshot_dir)
        self.pipeline = IndexingPipeline(
            self.config,
            self.index,
            self.provider,
            registry=self.registry,
            discovery=self.discovery,
            snapshots=self.snapshots,
        )
        self.code_grep = CodeGrep(self.root, self.discovery)
        self.outliner = FileOutliner(self.registry)
        self.differ = DiffEngine(self.snapshots)

        if load_cache:
            self.load_cache()

    def load_cache(self) -> bool:
        """Load the persisted index if it matches this root and provider."""
        return self.index.load(self.config.index_path, self.root, self.provider.signature)

    def relative_path(self, path: Union[str, Path]) -> str:
        """
        Normalise a user-supplied path to a project-relative '/' path.

        Raises:
            ValueError: If the path points outside the project
        """
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = Path(os.path.normpath(candidate))
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise ValueError(f"Path is outside the project: {path}") from None
        rel_path = relative_posix(self.root, resolved)
        if rel_path == ".":
            raise ValueError(f"Path is the project root, not a file: {path}")
        return rel_path

    # ===== Indexing =====

    def index_project(
        self,
        force: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunSummary:
        """Run the indexing pipeline over the whole project."""
        return self.pipeline.run(force=force, progress_callback=progress_callback, cancel_event=cancel_event)

    def reindex_file(self, path: Union[str, Path]) -> ReindexResult:
        """Re-index one file and save a snapshot of it."""
        return self.pipeline.reindex_file(self.relative_path(path))

    def forget_file(self, path: Union[str, Path]) -> int:
        """Drop a (deleted) file from the index."""
        return self.pipeline.forget_file(self.relative_path(path))

    # ===== Queries =====

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        file_filter: Optional[str] = None,
        ext_filter: Optional[str] = None,
    ) -> list[SearchHit]:
        """
        Semantic search over indexed chunks.

        Raises:
            NotIndexedError: If the project has not been indexed
        """
        if not self.index.is_ready:
            raise NotIndexedError()
        if limit is None:
            limit = int(self.config.get("search", "default_limit", default=8))

        query_vector = self.provider.embed(query)
        hits = self.index.search(query_vector, limit=limit, predicate=make_filter(file_filter, ext_filter))
        logger.debug(f"Search {query!r}: {len(hits)} hits")
        return hits

    def grep(
        self,
        pattern: str,
        is_regex: bool = False,
        case_sensitive: bool = True,
        limit: Optional[int] = None,
        context_lines: Optional[int] = None,
        file_filter: Optional[str] = None,
        ext_filter: Optional[str] = None,
    ) -> GrepResult:
        """Exact or regex search over the files on disk."""
        if limit is None:
            limit = int(self.config.get("search", "grep_limit", default=50))
        if context_lines is None:
            context_lines = int(self.config.get("search", "context_lines", default=2))
        return self.code_grep.search(
            pattern,
            is_regex=is_regex,
            case_sensitive=case_sensitive,
            limit=limit,
            context_lines=context_lines,
            file_filter=file_filter,
            ext_filter=ext_filter,
        )

    def outline(self, path: Union[str, Path], include_body: bool = False) -> FileOutline:
        """
        Structural outline of one file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        rel_path = self.relative_path(path)
        data = (self.root / rel_path).read_bytes()
        return self.outliner.outline(rel_path, decode_source(data), include_body=include_body)

    def history(self, path: Union[str, Path]) -> FileHistory:
        """Snapshots of one file, newest first."""
        rel_path = self.relative_path(path)
        snapshots = self.snapshots.list(rel_path)
        return FileHistory(file=rel_path, snapshots=snapshots, total=len(snapshots))

    def diff(self, path: Union[str, Path], old_ref: SnapshotRef = 1, new_ref: SnapshotRef = 0) -> DiffResult:
        """Diff two snapshots of a file, or a snapshot against the live file."""
        return self.differ.diff(self.relative_path(path), old_ref=old_ref, new_ref=new_ref)

    def stats(self) -> IndexStats:
        return self.index.stats()

    def __repr__(self) -> str:
        return f"Project(root={self.root}, state={self.index.state.value})"


class ProjectHost:
    """
    Holds the currently selected project for long-lived surfaces.

    The MCP server starts with no project (or the one from the environment)
    and switches with ``set_project``.
    """

    def __init__(self, provider_factory: Optional[ProviderFactory] = None):
        """
        Args:
            provider_factory: Builds the embedding provider for a project's
                config; the sentence-transformers default when omitted
        """
        self.provider_factory = provider_factory or default_provider
        self._project: Optional[Project] = None
        self._providers: dict[str, EmbeddingProvider] = {}
        self._lock = threading.Lock()

    @property
    def project(self) -> Project:
        """
        The active project.

        Raises:
            ConfigurationError: If no project has been set
        """
        project = self._project
        if project is None:
            raise ConfigurationError("Project root not configured. Call set_project first.")
        return project

    @property
    def has_project(self) -> bool:
        return self._project is not None

    def set_project(self, path: Union[str, Path]) -> Project:
        """
        Switch to the project at ``path``, loading its cached index if usable.

        Providers are reused across projects that use the same model.

        Raises:
            ConfigurationError: If path is not an existing directory
        """
        root = Path(path).expanduser()
        if not root.is_dir():
            raise ConfigurationError(f"Project root is not a directory: {path}")

        with self._lock:
            config = Config(root)
            provider = self.provider_factory(config)
            provider = self._providers.setdefault(provider.signature, provider)
            project = Project(root, provider=provider, config=config)
            self._project = project

        logger.info(f"Project set to {project.root} ({project.index.state.value})")
        return project
