"""
Tests for file discovery and change detection.
"""

import hashlib

import pytest

from siftd.discovery import FileDiscovery, relative_posix
from siftd.errors import UnreadableFileError
from siftd.tracker import ChangeTracker


@pytest.fixture
def discovery(config):
    return FileDiscovery(
        include_extensions=config.include_extensions,
        exclude_dirs=config.exclude_dirs,
        max_file_size=config.max_file_size,
    )


def rel_paths(root, files):
    return [relative_posix(root, f) for f in files]


class TestFileDiscovery:
    """Tests for FileDiscovery."""

    def test_discover_sorted_and_filtered(self, sample_codebase, discovery):
        files = discovery.discover(sample_codebase)

        assert rel_paths(sample_codebase, files) == [
            "README.md", "sample.py", "src/main.py", "src/notes.txt", "src/utils.py",
        ]

    def test_unknown_extensions_skipped(self, sample_codebase, discovery):
        (sample_codebase / "logo.png").write_bytes(b"\x89PNG")
        (sample_codebase / "Makefile").write_text("all:\n")

        files = rel_paths(sample_codebase, discovery.discover(sample_codebase))
        assert "logo.png" not in files
        assert "Makefile" not in files

    def test_gitignore_respected(self, sample_codebase, discovery):
        (sample_codebase / ".gitignore").write_text("*.txt\n")

        files = rel_paths(sample_codebase, discovery.discover(sample_codebase))
        assert "src/notes.txt" not in files
        assert "src/main.py" in files

    def test_nested_gitignore_scoped_to_directory(self, sample_codebase, discovery):
        (sample_codebase / "src" / ".gitignore").write_text("utils.py\n")
        (sample_codebase / "utils.py").write_text("x = 1\n")

        files = rel_paths(sample_codebase, discovery.discover(sample_codebase))
        assert "src/utils.py" not in files
        assert "utils.py" in files

    def test_gitignore_can_be_disabled(self, sample_codebase, discovery):
        (sample_codebase / ".gitignore").write_text("*.txt\n")
        discovery.respect_gitignore = False

        files = rel_paths(sample_codebase, discovery.discover(sample_codebase))
        assert "src/notes.txt" in files

    def test_size_ceiling(self, sample_codebase, discovery):
        discovery.max_file_size = 100
        (sample_codebase / "big.py").write_text("x = 1\n" * 100)

        files = rel_paths(sample_codebase, discovery.discover(sample_codebase))
        assert "big.py" not in files

    def test_accepts_matches_discover(self, sample_codebase, discovery):
        (sample_codebase / ".gitignore").write_text("*.txt\nbuild/\n")
        (sample_codebase / "src" / ".gitignore").write_text("utils.py\n")
        (sample_codebase / "build").mkdir()
        (sample_codebase / "build" / "out.py").write_text("x = 1\n")
        (sample_codebase / "big.py").write_text("x = 1\n" * 1000)
        discovery.max_file_size = 2000

        discovered = set(rel_paths(sample_codebase, discovery.discover(sample_codebase)))
        candidates = [
            "README.md", "sample.py", "src/main.py", "src/notes.txt", "src/utils.py",
            "build/out.py", "big.py", "node_modules/lib/index.js",
        ]
        accepted = {p for p in candidates if discovery.accepts(sample_codebase, sample_codebase / p)}

        assert accepted == discovered == {"README.md", "sample.py", "src/main.py"}

    def test_accepts_without_file_checks(self, sample_codebase, discovery):
        (sample_codebase / ".gitignore").write_text("generated.py\n")

        assert discovery.accepts(sample_codebase, "gone.py", check_file=False)
        assert not discovery.accepts(sample_codebase, "gone.py")
        assert not discovery.accepts(sample_codebase, "generated.py", check_file=False)
        assert not discovery.accepts(sample_codebase, sample_codebase.parent / "outside.py", check_file=False)

    def test_is_excluded_path(self, discovery):
        assert discovery.is_excluded_path("node_modules/pkg/index.js")
        assert discovery.is_excluded_path("a/.git/config")
        assert not discovery.is_excluded_path("src/build.py")


class TestChangeTracker:
    """Tests for ChangeTracker."""

    def test_fingerprint_is_sha256_of_bytes(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_bytes(b"print('hi')\n")

        assert ChangeTracker().fingerprint(path) == hashlib.sha256(b"print('hi')\n").hexdigest()

    def test_should_reindex(self, temp_dir):
        tracker = ChangeTracker()
        path = temp_dir / "a.py"
        path.write_text("one")
        digest = tracker.fingerprint(path)

        assert tracker.should_reindex(path, "a.py", {})
        assert not tracker.should_reindex(path, "a.py", {"a.py": digest})
        assert tracker.should_reindex(path, "a.py", {"a.py": digest}, force=True)

        path.write_text("two")
        assert tracker.should_reindex(path, "a.py", {"a.py": digest})

    def test_precomputed_digest_used(self, temp_dir):
        tracker = ChangeTracker()
        missing = temp_dir / "gone.py"

        assert not tracker.should_reindex(missing, "gone.py", {"gone.py": "abc"}, digest="abc")

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ChangeTracker().fingerprint(temp_dir / "missing.py")

    def test_unreadable_file(self, temp_dir):
        with pytest.raises(UnreadableFileError):
            ChangeTracker().fingerprint(temp_dir)
