"""
File discovery for siftd.

Walks a project tree and yields the files eligible for indexing: matching
extension, outside excluded directories and .gitignore rules, and under the
size ceiling.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union
import pathspec

logger = logging.getLogger(__name__)


def relative_posix(root: Path, path: Path) -> str:
    """Path of ``path`` relative to ``root`` with '/' separators on every OS."""
    return Path(os.path.relpath(path, root)).as_posix()


def _scoped_patterns(root_path: Path, gitignore_path: Path) -> list[str]:
    """Patterns of one .gitignore, rewritten relative to ``root_path``."""
    try:
        patterns = gitignore_path.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError as e:
        logger.warning(f"Failed to read {gitignore_path}: {e}")
        return []

    scope = relative_posix(root_path, gitignore_path.parent)
    if scope == ".":
        return patterns

    scoped = []
    for pattern in patterns:
        stripped = pattern.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("!"):
            scoped.append(f"!{scope}/{stripped[1:].lstrip('/')}")
        else:
            scoped.append(f"{scope}/{stripped.lstrip('/')}")
    return scoped


def load_nested_gitignore(root_path: Path, exclude_dirs: Iterable[str] = ()) -> Optional[pathspec.PathSpec]:
    """
    Load and merge all .gitignore files in a directory tree.

    Patterns from nested .gitignore files are scoped to their directory.

    Args:
        root_path: Root directory to search for .gitignore files
        exclude_dirs: Directory names whose .gitignore files are not read

    Returns:
        PathSpec with merged patterns, or None if no .gitignore files found
    """
    excluded = set(exclude_dirs)
    gitignore_files: list[Path] = []

    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        if ".gitignore" in filenames:
            gitignore_files.append(Path(dirpath) / ".gitignore")

    if not gitignore_files:
        logger.debug("No .gitignore files found")
        return None

    all_patterns: list[str] = []
    for gitignore_path in gitignore_files:
        all_patterns.extend(_scoped_patterns(root_path, gitignore_path))

    if not all_patterns:
        return None

    logger.debug(f"Loaded {len(all_patterns)} patterns from {len(gitignore_files)} .gitignore files")
    return pathspec.PathSpec.from_lines("gitwildmatch", all_patterns)


def _is_ignored(gitignore: pathspec.PathSpec, rel_path: str) -> bool:
    """Match a file and each of its ancestor directories, as the walk prunes them."""
    parts = rel_path.split("/")
    for depth in range(1, len(parts)):
        if gitignore.match_file("/".join(parts[:depth]) + "/"):
            return True
    return gitignore.match_file(rel_path)


@dataclass
class FileDiscovery:
    """
    Finds indexable files under a project root.

    Discovery is a read-only walk and is safe to run alongside indexing.
    """
    include_extensions: set[str]
    exclude_dirs: set[str] = field(default_factory=set)
    max_file_size: int = 1048576
    respect_gitignore: bool = True

    def is_candidate(self, file_path: Path) -> bool:
        """
        Check extension and size of a single file.

        Args:
            file_path: Path to check

        Returns:
            True if the file has an included extension and fits the size ceiling
        """
        if file_path.suffix.lower() not in self.include_extensions:
            return False
        try:
            file_size = file_path.stat().st_size
        except OSError as e:
            logger.debug(f"Cannot stat file {file_path}: {e}")
            return False
        if file_size > self.max_file_size:
            logger.debug(
                f"Skipping large file: {file_path} "
                f"({file_size / 1024 / 1024:.1f}MB > {self.max_file_size / 1024 / 1024:.1f}MB limit)"
            )
            return False
        return True

    def is_excluded_path(self, rel_path: str) -> bool:
        """True when any directory component of ``rel_path`` is excluded."""
        parts = rel_path.split("/")[:-1]
        return any(part in self.exclude_dirs for part in parts)

    def gitignore_for(self, root: Path, rel_path: str) -> Optional[pathspec.PathSpec]:
        """PathSpec from the .gitignore files in ``rel_path``'s ancestor directories."""
        patterns: list[str] = []
        directory = Path(root)
        for part in [""] + rel_path.split("/")[:-1]:
            directory = directory / part if part else directory
            gitignore_path = directory / ".gitignore"
            if gitignore_path.is_file():
                patterns.extend(_scoped_patterns(Path(root), gitignore_path))
        if not patterns:
            return None
        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    def accepts(self, root: Path, file_path: Union[str, Path], check_file: bool = True) -> bool:
        """
        Whether ``discover(root)`` would return ``file_path``.

        Args:
            root: Project root
            file_path: File to check, absolute or relative to root
            check_file: Also require an existing regular file under the size
                ceiling; pass False for files that may already be gone

        Returns:
            True if the file is an indexing candidate
        """
        root = Path(root)
        file_path = Path(file_path)
        if not file_path.is_absolute():
            file_path = root / file_path
        rel_path = relative_posix(root, file_path)
        if rel_path == "." or rel_path.startswith("../"):
            return False
        if self.is_excluded_path(rel_path):
            return False
        if file_path.suffix.lower() not in self.include_extensions:
            return False
        if self.respect_gitignore:
            gitignore = self.gitignore_for(root, rel_path)
            if gitignore and _is_ignored(gitignore, rel_path):
                logger.debug(f"Ignored by .gitignore: {rel_path}")
                return False
        if check_file:
            return file_path.is_file() and self.is_candidate(file_path)
        return True

    def discover(self, root: Path) -> list[Path]:
        """
        Discover indexable files in a directory tree.

        Args:
            root: Root directory to search

        Returns:
            Sorted list of absolute file paths
        """
        root = Path(root)
        gitignore = load_nested_gitignore(root, self.exclude_dirs) if self.respect_gitignore else None

        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            kept = []
            for name in dirnames:
                if name in self.exclude_dirs:
                    continue
                if gitignore and gitignore.match_file(relative_posix(root, current / name) + "/"):
                    continue
                kept.append(name)
            dirnames[:] = sorted(kept)

            for name in sorted(filenames):
                file_path = current / name
                if not file_path.is_file():
                    continue
                if gitignore and gitignore.match_file(relative_posix(root, file_path)):
                    continue
                if self.is_candidate(file_path):
                    files.append(file_path)

        files.sort(key=lambda p: relative_posix(root, p))
        logger.debug(f"Discovered {len(files)} files under {root}")
        return files
