"""
Line diff between two versions of a file.

The comparison is position-aligned: line i of the old version is compared
with line i of the new one. An inserted or deleted line therefore shows up
as a change on every line after it.
"""

import logging
from typing import Optional

from .models import DiffResult
from .snapshots import SnapshotRef, SnapshotStore

logger = logging.getLogger(__name__)

NO_CHANGES = "(no changes)"


def diff_lines(old: list[str], new: list[str], old_label: str = "old",
               new_label: str = "new") -> tuple[list[str], int, int]:
    """
    Compare two line lists position by position.

    Returns:
        (diff lines starting with the ``---``/``+++`` headers, additions, deletions)
    """
    result = [f"--- {old_label}", f"+++ {new_label}"]
    additions = deletions = 0

    for i in range(max(len(old), len(new))):
        old_line: Optional[str] = old[i] if i < len(old) else None
        new_line: Optional[str] = new[i] if i < len(new) else None
        if old_line == new_line:
            continue
        if old_line is not None:
            result.append(f"-{old_line}")
            deletions += 1
        if new_line is not None:
            result.append(f"+{new_line}")
            additions += 1

    return result, additions, deletions


def _decode_lines(data: bytes) -> list[str]:
    text = data.decode("utf-8", errors="replace").replace("\r\n", "\n")
    # A final newline terminates the last line rather than starting a new one
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n") if text else []


class DiffEngine:
    """Diffs snapshots of a file against each other or against the live file."""

    def __init__(self, store: SnapshotStore):
        self.store = store

    def diff(self, rel_path: str, old_ref: SnapshotRef = 1, new_ref: SnapshotRef = 0) -> DiffResult:
        """
        Diff two versions of ``rel_path``.

        Args:
            rel_path: Project-relative file path
            old_ref: Older version (default: the previous snapshot)
            new_ref: Newer version (default: the latest snapshot; LIVE for disk)

        Raises:
            SnapshotNotFoundError: If a reference does not resolve
            FileNotFoundError: If new_ref is LIVE and the file is gone
        """
        old_label, old_data = self.store.read(rel_path, old_ref)
        new_label, new_data = self.store.read(rel_path, new_ref)

        lines, additions, deletions = diff_lines(
            _decode_lines(old_data), _decode_lines(new_data), old_label, new_label
        )
        logger.debug(f"Diff {rel_path} {old_label}..{new_label}: +{additions} -{deletions}")

        return DiffResult(
            file=rel_path,
            old_label=old_label,
            new_label=new_label,
            additions=additions,
            deletions=deletions,
            unified_text="\n".join(lines) if additions or deletions else NO_CHANGES,
        )
