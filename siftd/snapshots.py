"""
Per-file snapshot log for siftd.

Every snapshot is an immutable copy of a file's bytes stored at
``<root>/.siftd/snapshots/<relative path>/<UTC timestamp>.snapshot``.
Snapshots are only ever created, never overwritten; retention is up to the
user (``siftd clean --snapshots`` removes them all).
"""

import datetime
import logging
import re
from pathlib import Path
from typing import Union

from .errors import SnapshotNotFoundError
from .models import SnapshotInfo

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".snapshot"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"

# Ref meaning "the file as it is on disk now"
LIVE = -1

SnapshotRef = Union[int, str]

_ID_RE = re.compile(r"^(?P<stamp>\d{8}T\d{12}Z)(?:-(?P<seq>\d+))?$")


def _sort_key(snapshot_id: str) -> tuple[str, int]:
    match = _ID_RE.match(snapshot_id)
    if not match:
        return (snapshot_id, 0)
    return (match.group("stamp"), int(match.group("seq") or 0))


def _parse_timestamp(snapshot_id: str) -> datetime.datetime:
    match = _ID_RE.match(snapshot_id)
    stamp = match.group("stamp") if match else snapshot_id
    return datetime.datetime.strptime(stamp, TIMESTAMP_FORMAT).replace(tzinfo=datetime.timezone.utc)


class SnapshotStore:
    """Creates, lists and reads snapshots of project files."""

    def __init__(self, project_root: Path, snapshot_dir: Path):
        """
        Args:
            project_root: Root that relative paths are resolved against
            snapshot_dir: Directory holding one sub-tree per snapshotted file
        """
        self.project_root = Path(project_root)
        self.snapshot_dir = Path(snapshot_dir)

    def _dir_for(self, rel_path: str) -> Path:
        parts = Path(rel_path).parts
        if Path(rel_path).is_absolute() or ".." in parts:
            raise ValueError(f"Snapshot path must be relative to the project: {rel_path}")
        return self.snapshot_dir.joinpath(*parts)

    def save(self, rel_path: str) -> SnapshotInfo:
        """
        Copy the live file into a new snapshot.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        data = (self.project_root / rel_path).read_bytes()
        target_dir = self._dir_for(rel_path)
        target_dir.mkdir(parents=True, exist_ok=True)

        stamp = datetime.datetime.now(datetime.timezone.utc).strftime(TIMESTAMP_FORMAT)
        snapshot_id = stamp
        seq = 0
        while True:
            try:
                with open(target_dir / f"{snapshot_id}{SNAPSHOT_SUFFIX}", "xb") as f:
                    f.write(data)
                break
            except FileExistsError:
                seq += 1
                snapshot_id = f"{stamp}-{seq}"

        logger.debug(f"Saved snapshot {snapshot_id} of {rel_path} ({len(data)} bytes)")
        return SnapshotInfo(
            id=snapshot_id,
            file_path=rel_path,
            timestamp=_parse_timestamp(snapshot_id),
            size_bytes=len(data),
        )

    def list(self, rel_path: str) -> list[SnapshotInfo]:
        """Snapshots of a file, newest first. Empty when there are none."""
        directory = self._dir_for(rel_path)
        if not directory.is_dir():
            return []

        ids = [p.name[:-len(SNAPSHOT_SUFFIX)] for p in directory.iterdir()
               if p.is_file() and p.name.endswith(SNAPSHOT_SUFFIX)]
        ids.sort(key=_sort_key, reverse=True)

        snapshots = []
        for snapshot_id in ids:
            try:
                timestamp = _parse_timestamp(snapshot_id)
            except ValueError:
                logger.debug(f"Skipping snapshot with unexpected name: {snapshot_id}")
                continue
            snapshots.append(SnapshotInfo(
                id=snapshot_id,
                file_path=rel_path,
                timestamp=timestamp,
                size_bytes=(directory / f"{snapshot_id}{SNAPSHOT_SUFFIX}").stat().st_size,
            ))
        return snapshots

    def read(self, rel_path: str, ref: SnapshotRef) -> tuple[str, bytes]:
        """
        Resolve a snapshot reference to its label and content.

        Args:
            rel_path: Project-relative file path
            ref: Position (0 = newest, 1 = the one before ...), snapshot id,
                or LIVE for the file on disk

        Returns:
            (label, content bytes)

        Raises:
            SnapshotNotFoundError: If the reference matches no snapshot
            FileNotFoundError: If ref is LIVE and the file is gone
        """
        if ref == LIVE:
            return f"{rel_path} (live)", (self.project_root / rel_path).read_bytes()

        directory = self._dir_for(rel_path)
        if isinstance(ref, int):
            snapshots = self.list(rel_path)
            if not snapshots:
                raise SnapshotNotFoundError(f"No snapshots for {rel_path}")
            if ref < 0 or ref >= len(snapshots):
                raise SnapshotNotFoundError(
                    f"Snapshot {ref} out of range ({len(snapshots)} snapshots of {rel_path})"
                )
            snapshot_id = snapshots[ref].id
        else:
            if not _ID_RE.match(ref):
                raise SnapshotNotFoundError(f"Invalid snapshot id {ref!r} for {rel_path}")
            snapshot_id = ref

        path = directory / f"{snapshot_id}{SNAPSHOT_SUFFIX}"
        try:
            return snapshot_id, path.read_bytes()
        except FileNotFoundError as e:
            raise SnapshotNotFoundError(f"No snapshot {snapshot_id} for {rel_path}") from e
