"""
Embedding providers for siftd.

``EmbeddingProvider`` is the contract the index depends on; any model that
turns text into fixed-length float vectors can implement it.
``SentenceTransformerProvider`` is the default local implementation, with
lazy loading and batch processing support.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from .utils import retry_on_failure

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class EmbeddingProvider(ABC):
    """Converts text into fixed-length numeric vectors."""

    @property
    @abstractmethod
    def signature(self) -> str:
        """
        Identity of the model producing the vectors.

        Stored alongside a persisted index; an index built with one signature
        is never reused with another.
        """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this provider returns."""

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts``, returning one vector per text in input order."""

    def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        return self.embed_batch([text])[0]


class SentenceTransformerProvider(EmbeddingProvider):
    """
    Wrapper around sentence-transformers for generating embeddings.

    Features:
    - Lazy model loading (only loads when first needed)
    - Automatic GPU detection with CPU fallback
    - Normalized embeddings
    - Retry on transient failures
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, device: Optional[str] = None, batch_size: int = 16):
        """
        Initialize the embedding provider.

        Args:
            model_name: Name of the sentence-transformers model to use
            device: Device to use ('cuda', 'cpu', or None for auto-detect)
            batch_size: Batch size handed to the model's encoder
        """
        self.model_name = model_name
        self.device = device
        self.batch_size = batch_size
        self._model: Optional["SentenceTransformer"] = None
        self._dimension: Optional[int] = None
        self._model_lock = threading.Lock()

    @property
    def signature(self) -> str:
        return f"sentence-transformers:{self.model_name}"

    @property
    def model(self) -> "SentenceTransformer":
        """Lazy-load the model on first access (thread-safe)."""
        if self._model is None:
            with self._model_lock:
                # Another thread may have loaded it while we waited
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    logger.info(f"Loading embedding model: {self.model_name}")
                    self._model = SentenceTransformer(self.model_name, device=self.device)
                    logger.info(f"Model loaded on device: {self._model.device}")
        return self._model

    @property
    def dimension(self) -> int:
        """Get the embedding dimension."""
        if self._dimension is None:
            dimension = self.model.get_sentence_embedding_dimension()
            if dimension is None:
                dimension = len(self.model.encode("test", show_progress_bar=False))
            self._dimension = int(dimension)
            logger.info(f"Embedding dimension: {self._dimension}")
        return self._dimension

    @retry_on_failure(max_attempts=3, delay=0.5, exceptions=(RuntimeError, OSError))
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts with automatic retry on failure.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, in the same order as ``texts``
        """
        if not texts:
            return []

        logger.debug(f"Generating embeddings for {len(texts)} texts")
        embeddings = self.model.encode(
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return [emb.tolist() for emb in embeddings]

    def __repr__(self) -> str:
        """String representation."""
        loaded = "loaded" if self._model is not None else "not loaded"
        return f"SentenceTransformerProvider(model={self.model_name}, {loaded})"
