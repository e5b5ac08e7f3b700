"""
Tests for the indexing pipeline.

Covers incremental runs, chunk id stability, pruning of deleted files,
cancellation, run serialization and per-file failure isolation.
"""

import threading

import pytest

from conftest import FailingProvider, FakeProvider
from siftd.config import Config
from siftd.errors import FileNotIndexableError, IndexingInProgressError
from siftd.index import _IndexSnapshot
from siftd.pipeline import decode_source
from siftd.progress import ProgressStage
from siftd.project import Project

SAMPLE_FILES = {"README.md", "sample.py", "src/main.py", "src/notes.txt", "src/utils.py"}


class TestFullRun:
    """Tests for IndexingPipeline.run."""

    def test_first_run_indexes_everything(self, project):
        summary = project.index_project()

        assert summary.files_total == len(SAMPLE_FILES)
        assert summary.skipped == 0
        assert summary.failed == 0
        assert summary.chunks_new > 0
        assert summary.chunks_total == len(project.index)
        assert set(project.index.fingerprints) == SAMPLE_FILES
        assert project.config.index_path.exists()

    def test_excluded_directories_not_indexed(self, indexed_project):
        assert not any(p.startswith("node_modules/") for p in indexed_project.index.file_paths())

    def test_second_run_is_idempotent(self, indexed_project):
        """Re-running over an unchanged tree adds nothing."""
        count = len(indexed_project.index)
        summary = indexed_project.index_project()

        assert summary.chunks_new == 0
        assert summary.skipped == len(SAMPLE_FILES)
        assert len(indexed_project.index) == count

    def test_chunk_ids_stable_across_forced_runs(self, indexed_project):
        before = [c.id for c in indexed_project.index.chunks()]
        summary = indexed_project.index_project(force=True)

        assert summary.skipped == 0
        assert sorted(c.id for c in indexed_project.index.chunks()) == sorted(before)

    def test_changed_file_reindexed(self, indexed_project):
        utils = indexed_project.root / "src" / "utils.py"
        utils.write_text('def utility_function():\n    return "changed"\n\n\ndef extra():\n    return 2\n')

        summary = indexed_project.index_project()

        assert summary.skipped == len(SAMPLE_FILES) - 1
        names = [c.name for c in indexed_project.index.chunks("src/utils.py")]
        assert names == ["utility_function", "extra"]

    def test_emptied_file_loses_its_chunks(self, indexed_project):
        (indexed_project.root / "src" / "utils.py").write_text("")

        indexed_project.index_project()

        assert indexed_project.index.chunks("src/utils.py") == []
        assert "src/utils.py" in indexed_project.index.fingerprints

    def test_deleted_file_pruned(self, indexed_project):
        (indexed_project.root / "src" / "notes.txt").unlink()

        summary = indexed_project.index_project()

        assert summary.removed == 1
        assert "src/notes.txt" not in indexed_project.index.file_paths()

    def test_run_publishes_a_single_generation(self, indexed_project, monkeypatch):
        """Readers never see new chunks next to entries of a file being pruned."""
        (indexed_project.root / "src" / "utils.py").write_text("def renamed():\n    return 1\n")
        (indexed_project.root / "src" / "notes.txt").unlink()

        generations = []
        build = _IndexSnapshot.build

        def recording_build(chunks, matrix, fingerprints, dimension):
            snapshot = build(chunks, matrix, fingerprints, dimension)
            generations.append(snapshot)
            return snapshot

        monkeypatch.setattr(_IndexSnapshot, "build", recording_build)
        summary = indexed_project.index_project()

        assert summary.removed == 1
        assert len(generations) == 1
        published = generations[0]
        assert "src/notes.txt" not in {c.file_path for c in published.chunks}
        assert "src/notes.txt" not in published.fingerprints
        assert [c.name for c in published.chunks if c.file_path == "src/utils.py"] == ["renamed"]

    def test_pruning_can_be_disabled(self, sample_codebase, fake_provider):
        config = Config(sample_codebase)
        config.set("indexer", "prune_deleted", value=False)
        project = Project(sample_codebase, provider=fake_provider, config=config)
        project.index_project()
        (sample_codebase / "src" / "notes.txt").unlink()

        summary = project.index_project()

        assert summary.removed == 0
        assert "src/notes.txt" in project.index.file_paths()

    def test_parallel_and_sequential_scans_agree(self, sample_codebase):
        """Chunk order does not depend on scanning parallelism."""
        orders = []
        for parallel in (True, False):
            config = Config(sample_codebase)
            config.set("performance", "parallel_enabled", value=parallel)
            project = Project(sample_codebase, provider=FakeProvider(), config=config, load_cache=False)
            project.index_project(force=True)
            orders.append([c.id for c in project.index.chunks()])

        assert orders[0] == orders[1]

    def test_empty_project_becomes_searchable(self, temp_dir, fake_provider):
        project = Project(temp_dir, provider=fake_provider)
        summary = project.index_project()

        assert summary.files_total == 0
        assert project.index.is_ready
        assert project.search("anything") == []

    def test_progress_events(self, project):
        events = []
        project.index_project(progress_callback=events.append)

        scan = [e for e in events if e.stage == ProgressStage.SCAN]
        embed = [e for e in events if e.stage == ProgressStage.EMBED]
        assert len(scan) == len(SAMPLE_FILES)
        assert scan[-1].current == scan[-1].total
        assert embed
        assert embed[-1].fraction == 1.0


class TestCancellationAndLocking:
    """Tests for cancellation and run serialization."""

    def test_cancelled_run_commits_nothing(self, project):
        cancel = threading.Event()
        cancel.set()

        summary = project.index_project(cancel_event=cancel)

        assert summary.cancelled
        assert len(project.index) == 0
        assert not project.index.is_ready
        assert not project.config.index_path.exists()

    def test_cancel_after_first_batch(self, sample_codebase):
        """Cancelling between batches keeps the previous index untouched."""
        config = Config(sample_codebase)
        config.set("embeddings", "batch_size", value=1)
        cancel = threading.Event()

        class CancellingProvider(FakeProvider):
            def embed_batch(self, texts):
                cancel.set()
                return super().embed_batch(texts)

        provider = CancellingProvider()
        project = Project(sample_codebase, provider=provider, config=config)
        summary = project.index_project(cancel_event=cancel)

        assert summary.cancelled
        assert len(provider.calls) == 1
        assert len(project.index) == 0

    def test_concurrent_run_rejected(self, project):
        lock = project.pipeline._run_lock
        lock.acquire()
        try:
            assert project.pipeline.is_running
            with pytest.raises(IndexingInProgressError):
                project.index_project()
            with pytest.raises(IndexingInProgressError):
                project.reindex_file("sample.py")
        finally:
            lock.release()

        assert project.index_project().chunks_new > 0


class TestFailureIsolation:
    """Tests for per-file failures."""

    def test_failed_batch_only_fails_its_files(self, sample_codebase):
        config = Config(sample_codebase)
        config.set("embeddings", "batch_size", value=1)
        project = Project(sample_codebase, provider=FailingProvider("utility"), config=config)

        summary = project.index_project()

        assert summary.failed == 2
        assert "src/utils.py" not in project.index.fingerprints
        assert "src/main.py" not in project.index.fingerprints
        assert "sample.py" in project.index.fingerprints
        assert project.index.chunks("src/main.py") == []

    def test_failed_files_retried_next_run(self, sample_codebase):
        config = Config(sample_codebase)
        config.set("embeddings", "batch_size", value=1)
        project = Project(sample_codebase, provider=FailingProvider("utility"), config=config)
        project.index_project()

        project.pipeline.provider = FakeProvider()
        summary = project.index_project()

        assert summary.failed == 0
        assert summary.skipped == len(SAMPLE_FILES) - 2
        assert project.index.chunks("src/utils.py")


class TestSingleFile:
    """Tests for reindex_file and forget_file."""

    def test_reindex_file_snapshots(self, indexed_project):
        result = indexed_project.reindex_file("src/utils.py")

        assert result.file == "src/utils.py"
        assert result.chunks == 1
        assert result.snapshot_id is not None
        assert indexed_project.history("src/utils.py").total == 1

    def test_reindex_missing_file(self, indexed_project):
        with pytest.raises(FileNotFoundError):
            indexed_project.reindex_file("src/missing.py")

    def test_reindex_rejects_files_discovery_skips(self, indexed_project):
        root = indexed_project.root
        (root / ".gitignore").write_text("generated.py\n")
        (root / "generated.py").write_text("def generated():\n    return 1\n")
        indexed_project.discovery.max_file_size = 100
        (root / "big.txt").write_text("x" * 200)

        for rel_path in ("generated.py", "big.txt"):
            with pytest.raises(FileNotIndexableError):
                indexed_project.reindex_file(rel_path)
            assert indexed_project.history(rel_path).total == 0

        assert not {"generated.py", "big.txt"} & indexed_project.index.file_paths()

    def test_forget_file(self, indexed_project):
        removed = indexed_project.forget_file("src/utils.py")

        assert removed == 1
        assert "src/utils.py" not in indexed_project.index.file_paths()


def test_decode_source_normalizes_line_endings():
    assert decode_source(b"a\r\nb\r\n") == "a\nb\n"
    assert decode_source(b"caf\xe9") == "caf\ufffd"
