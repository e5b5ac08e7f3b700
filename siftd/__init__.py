"""
siftd - Local semantic code search with exact-match grep and file history.

This package provides:
- Language-aware chunking (tree-sitter for JS/TS/Go, indentation heuristics
  for Python, embedded script/style regions for HTML, Vue and Svelte)
- An exact cosine vector index with atomic JSON persistence
- Incremental indexing by content fingerprint, with file watching
- Per-file snapshots and position-aligned diffs
- CLI and MCP integration
"""

from .models import Chunk, ChunkKind, SearchHit, RunSummary, IndexStats
from .config import Config
from .embeddings import EmbeddingProvider, SentenceTransformerProvider
from .index import VectorIndex, IndexState, cosine_similarity
from .pipeline import IndexingPipeline
from .project import Project, ProjectHost
from .chunkers import ChunkStrategy, ChunkerKind, ChunkerRegistry

__version__ = "0.3.0"

__all__ = [
    # Models
    "Chunk",
    "ChunkKind",
    "SearchHit",
    "RunSummary",
    "IndexStats",
    # Core components
    "Config",
    "EmbeddingProvider",
    "SentenceTransformerProvider",
    "VectorIndex",
    "IndexState",
    "cosine_similarity",
    "IndexingPipeline",
    "Project",
    "ProjectHost",
    # Chunkers
    "ChunkStrategy",
    "ChunkerKind",
    "ChunkerRegistry",
]
