"""
File system watcher for siftd.

Monitors a project for changes and keeps its index current file by file:
changed files are re-indexed (which also snapshots them), deleted files are
dropped from the index.
"""

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Optional
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileSystemEvent

from .errors import FileNotIndexableError, IndexingInProgressError, SiftdError

if TYPE_CHECKING:
    from .project import Project

logger = logging.getLogger(__name__)

MODIFIED = "modified"
CREATED = "created"
DELETED = "deleted"

ChangeCallback = Callable[[str, str], None]


class CodeChangeHandler(FileSystemEventHandler):
    """
    Event handler for code file changes.

    Batches changes and debounces rapid modifications to avoid
    excessive re-indexing. Events arrive on the observer thread; changes are
    applied by whoever calls ``process_pending_changes``.
    """

    def __init__(
        self,
        project: "Project",
        debounce_seconds: float = 0.5,
        on_change: Optional[ChangeCallback] = None,
    ):
        """
        Initialize the change handler.

        Args:
            project: Project whose index is kept current
            debounce_seconds: Quiet period required before changes are applied
            on_change: Optional callback(rel_path, event_type) when a change is queued
        """
        super().__init__()
        self.project = project
        self.debounce_seconds = debounce_seconds
        self.on_change = on_change

        self._pending_changes: dict[str, str] = {}  # rel_path -> event_type
        self._last_event_time = 0.0
        self._lock = threading.Lock()

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._queue_change(event.src_path, MODIFIED)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._queue_change(event.src_path, CREATED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._queue_change(event.src_path, DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # A move is a delete of the source plus a create of the destination
        self._queue_change(event.src_path, DELETED)
        dest_path = getattr(event, "dest_path", None)
        if dest_path:
            self._queue_change(dest_path, CREATED)

    def should_track(self, path: str) -> Optional[str]:
        """
        Project-relative path if changes to ``path`` matter, else None.

        Extension, excluded directories and .gitignore rules are checked
        here. Size is checked when the change is applied, since the file may
        still be being written or may already be gone.
        """
        if isinstance(path, bytes):
            path = path.decode()
        try:
            rel_path = self.project.relative_path(path)
        except ValueError:
            return None
        if not self.project.discovery.accepts(self.project.root, rel_path, check_file=False):
            return None
        return rel_path

    def _queue_change(self, path: str, event_type: str) -> None:
        rel_path = self.should_track(path)
        if rel_path is None:
            return

        with self._lock:
            self._pending_changes[rel_path] = event_type
            self._last_event_time = time.monotonic()

        logger.debug(f"Queued {event_type} event for {rel_path}")

        if self.on_change:
            self.on_change(rel_path, event_type)

    @property
    def pending(self) -> dict[str, str]:
        with self._lock:
            return dict(self._pending_changes)

    def process_pending_changes(self, force: bool = False) -> int:
        """
        Apply pending changes once the debounce period has elapsed.

        Changes that hit a running index job stay queued for the next call.

        Args:
            force: Ignore the debounce period

        Returns:
            Number of changes applied
        """
        with self._lock:
            if not self._pending_changes:
                return 0
            if not force and time.monotonic() - self._last_event_time < self.debounce_seconds:
                return 0
            batch = dict(self._pending_changes)
            self._pending_changes.clear()

        logger.info(f"Processing {len(batch)} pending changes")

        applied = 0
        for rel_path, event_type in batch.items():
            try:
                if event_type == DELETED or not (self.project.root / rel_path).exists():
                    removed = self.project.forget_file(rel_path)
                    logger.info(f"Removed deleted file from index: {rel_path} ({removed} chunks)")
                else:
                    try:
                        result = self.project.reindex_file(rel_path)
                        logger.info(f"Re-indexed {event_type} file: {rel_path} ({result.chunks} chunks)")
                    except FileNotIndexableError:
                        # Grew past the size ceiling or stopped being a regular file
                        removed = self.project.forget_file(rel_path)
                        logger.info(f"Dropped {rel_path} from index, no longer indexable ({removed} chunks)")
                applied += 1
            except IndexingInProgressError:
                logger.debug(f"Index busy, keeping {rel_path} queued")
                with self._lock:
                    self._pending_changes.setdefault(rel_path, event_type)
            except (SiftdError, OSError) as e:
                logger.error(f"Failed to process change for {rel_path}: {e}")

        return applied


class FileWatcher:
    """
    File system watcher that monitors a project for changes.

    Uses watchdog to detect file system events and triggers
    incremental indexing for changed files.
    """

    def __init__(self, project: "Project", debounce_seconds: float = 0.5):
        """
        Initialize the file watcher.

        Args:
            project: Project to keep indexed
            debounce_seconds: Quiet period before changes are applied
        """
        self.project = project
        self.debounce_seconds = debounce_seconds
        self.observer: Optional[Observer] = None
        self.handler: Optional[CodeChangeHandler] = None
        self._running = False

    def start(self, on_change: Optional[ChangeCallback] = None, poll_interval: float = 0.1) -> None:
        """
        Watch the project root until ``stop`` is called or Ctrl+C.

        Args:
            on_change: Optional callback(rel_path, event_type) for change notifications
            poll_interval: Seconds between checks of the pending queue
        """
        if self._running:
            logger.warning("Watcher is already running")
            return

        root = self.project.root
        logger.info(f"Starting file watcher for {root}")

        self.handler = CodeChangeHandler(
            self.project,
            debounce_seconds=self.debounce_seconds,
            on_change=on_change,
        )
        self.observer = Observer()
        self.observer.schedule(self.handler, str(root), recursive=True)
        self.observer.start()
        self._running = True

        logger.info("File watcher started")

        try:
            while self._running:
                time.sleep(poll_interval)
                if self.handler:
                    self.handler.process_pending_changes()
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop the file watcher."""
        if not self._running:
            return

        logger.info("Stopping file watcher")
        self._running = False

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self.handler = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def __repr__(self) -> str:
        status = "running" if self._running else "stopped"
        return f"FileWatcher({status})"
