"""
Exception types for siftd.

Per-file failures (unreadable files, parse degradation) are caught and counted
by the indexing pipeline; the remaining errors abort only the operation that
raised them.
"""

from typing import Optional


class SiftdError(Exception):
    """Base class for all siftd errors."""


class ConfigurationError(SiftdError):
    """No usable project root is configured."""


class NotIndexedError(SiftdError):
    """A search was requested before any successful index run."""

    def __init__(self, message: str = "Project not indexed yet. Run index first."):
        super().__init__(message)


class UnreadableFileError(SiftdError):
    """A file exists but its bytes could not be read."""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        message = f"Cannot read {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class FileNotIndexableError(SiftdError):
    """A file is excluded from indexing (extension, directory, .gitignore or size)."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Not an indexable file: {path}")


class ParseDegradation(SiftdError):
    """Structural chunking failed; the caller should use a coarser strategy."""


class DimensionMismatchError(SiftdError):
    """A vector's length disagrees with the index's established dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Embedding dimension mismatch: index uses {expected}, got {actual}")


class CacheInvalidError(SiftdError):
    """A persisted index cannot be used with the running configuration."""


class InvalidPatternError(SiftdError):
    """A grep pattern is not a valid regular expression."""


class IndexingInProgressError(SiftdError):
    """An indexing run is already active for this project."""

    def __init__(self, message: str = "An indexing run is already in progress"):
        super().__init__(message)


class SnapshotNotFoundError(SiftdError):
    """A requested snapshot does not exist."""
