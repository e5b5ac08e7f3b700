"""
Tests for the Project facade and ProjectHost.
"""

import pytest

from conftest import FakeProvider
from siftd.errors import ConfigurationError, NotIndexedError
from siftd.project import Project, ProjectHost


class TestProject:
    """Tests for Project."""

    def test_root_must_be_directory(self, temp_dir, fake_provider):
        with pytest.raises(ConfigurationError):
            Project(temp_dir / "missing", provider=fake_provider)

        (temp_dir / "file.txt").write_text("x")
        with pytest.raises(ConfigurationError):
            Project(temp_dir / "file.txt", provider=fake_provider)

    def test_search_before_index(self, project):
        with pytest.raises(NotIndexedError):
            project.search("utility")

    def test_search_ranks_relevant_chunk_first(self, indexed_project):
        hits = indexed_project.search("utility function")

        assert hits
        assert hits[0].chunk.file_path == "src/utils.py"
        assert hits[0].chunk.name == "utility_function"
        assert all(-1.0 <= h.score <= 1.0 for h in hits)

    def test_search_default_limit_from_config(self, indexed_project):
        indexed_project.config.set("search", "default_limit", value=2)

        assert len(indexed_project.search("function")) == 2

    def test_search_filters(self, indexed_project):
        hits = indexed_project.search("section", ext_filter=".md")
        assert hits
        assert all(h.chunk.file_path == "README.md" for h in hits)

        hits = indexed_project.search("function", file_filter="src/")
        assert hits
        assert all(h.chunk.file_path.startswith("src/") for h in hits)

    def test_relative_path(self, project):
        assert project.relative_path("src/utils.py") == "src/utils.py"
        assert project.relative_path(project.root / "src" / "utils.py") == "src/utils.py"
        assert project.relative_path("src/../sample.py") == "sample.py"

        with pytest.raises(ValueError):
            project.relative_path("../outside.py")
        with pytest.raises(ValueError):
            project.relative_path(project.root)

    def test_cached_index_loaded_on_open(self, indexed_project):
        reopened = Project(indexed_project.root, provider=FakeProvider())

        assert reopened.index.is_ready
        assert len(reopened.index) == len(indexed_project.index)
        assert reopened.search("utility function")[0].chunk.file_path == "src/utils.py"

    def test_cache_from_other_provider_ignored(self, indexed_project):
        reopened = Project(indexed_project.root, provider=FakeProvider(name="other"))

        assert not reopened.index.is_ready
        assert reopened.index_project().skipped == 0

    def test_history_and_diff(self, indexed_project):
        utils = indexed_project.root / "src" / "utils.py"
        indexed_project.reindex_file("src/utils.py")
        utils.write_text(utils.read_text().replace('return "utility"', 'return "tool"'))
        indexed_project.reindex_file("src/utils.py")

        history = indexed_project.history("src/utils.py")
        assert history.total == 2
        assert history.file == "src/utils.py"

        result = indexed_project.diff("src/utils.py")
        assert result.additions == 1
        assert result.deletions == 1
        assert '+    return "tool"' in result.unified_text

    def test_stats(self, indexed_project):
        stats = indexed_project.stats()

        assert stats.is_indexed
        assert stats.files_tracked == 5
        assert stats.provider == "fake:hash-128"
        assert stats.dimension == 128
        assert ".py" in stats.by_extension

    def test_repr(self, project):
        assert "empty" in repr(project)


class TestProjectHost:
    """Tests for ProjectHost."""

    def test_no_project_configured(self):
        host = ProjectHost(provider_factory=lambda config: FakeProvider())

        assert not host.has_project
        with pytest.raises(ConfigurationError):
            host.project

    def test_set_project(self, sample_codebase):
        host = ProjectHost(provider_factory=lambda config: FakeProvider())
        project = host.set_project(str(sample_codebase))

        assert host.has_project
        assert host.project is project
        assert project.root == sample_codebase

    def test_set_project_invalid_path(self, temp_dir):
        host = ProjectHost(provider_factory=lambda config: FakeProvider())

        with pytest.raises(ConfigurationError):
            host.set_project(temp_dir / "missing")
        assert not host.has_project

    def test_providers_reused_across_projects(self, sample_codebase, temp_dir):
        other = temp_dir / "src"
        host = ProjectHost(provider_factory=lambda config: FakeProvider())

        first = host.set_project(sample_codebase)
        second = host.set_project(other)

        assert second.root == other
        assert second.provider is first.provider
