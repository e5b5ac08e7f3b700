"""
Change detection for incremental indexing.

Files are fingerprinted by a SHA-256 digest of their raw bytes; a file is
re-processed only when its digest differs from the one committed after its
last successful index.
"""

import hashlib
import logging
from pathlib import Path
from typing import Mapping, Optional

from .errors import UnreadableFileError

logger = logging.getLogger(__name__)

_READ_BLOCK = 65536


class ChangeTracker:
    """Computes content fingerprints and decides which files need re-indexing."""

    @staticmethod
    def fingerprint_bytes(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def fingerprint(self, file_path: Path) -> str:
        """
        Compute the SHA-256 hex digest of a file's content.

        Raises:
            FileNotFoundError: If the file does not exist
            UnreadableFileError: If the file exists but cannot be read
        """
        sha256 = hashlib.sha256()
        try:
            with open(file_path, "rb") as f:
                for block in iter(lambda: f.read(_READ_BLOCK), b""):
                    sha256.update(block)
        except FileNotFoundError:
            raise
        except OSError as e:
            raise UnreadableFileError(str(file_path), str(e)) from e
        return sha256.hexdigest()

    def should_reindex(
        self,
        file_path: Path,
        rel_path: str,
        stored: Mapping[str, str],
        force: bool = False,
        digest: Optional[str] = None,
    ) -> bool:
        """
        Decide whether a file must be chunked and embedded again.

        Args:
            file_path: Absolute path of the file on disk
            rel_path: Project-relative key used in ``stored``
            stored: Fingerprints committed by earlier runs
            force: Re-index regardless of content
            digest: Already-computed fingerprint, to avoid reading the file twice

        Returns:
            True when forced, when the file has never been indexed, or when its
            content changed since it was
        """
        if force:
            return True
        previous = stored.get(rel_path)
        if previous is None:
            return True
        current = digest if digest is not None else self.fingerprint(file_path)
        if current != previous:
            logger.debug(f"Content changed: {rel_path}")
            return True
        return False
