"""
Tests for the command-line interface.
"""

import logging

import pytest
from click.testing import CliRunner

from conftest import FakeProvider
from siftd import __version__
from siftd.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put pytest's handlers back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_default_provider(monkeypatch):
    monkeypatch.setattr("siftd.project.default_provider", lambda config: FakeProvider())


def test_version(runner):
    result = runner.invoke(main, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_init(runner, temp_dir):
    result = runner.invoke(main, ["init", "--path", str(temp_dir)])

    assert result.exit_code == 0
    assert (temp_dir / ".siftd" / "config.toml").exists()

    again = runner.invoke(main, ["init", "--path", str(temp_dir)])
    assert "already initialized" in again.output


def test_grep(runner, sample_codebase):
    result = runner.invoke(main, ["grep", "utility_function", "--path", str(sample_codebase)])

    assert result.exit_code == 0
    assert "src/main.py:1" in result.output
    assert "3 matches" in result.output


def test_grep_invalid_regex(runner, sample_codebase):
    result = runner.invoke(main, ["grep", "(", "--regex", "--path", str(sample_codebase)])

    assert result.exit_code == 1
    assert "Invalid regex" in result.output


def test_outline(runner, sample_codebase):
    result = runner.invoke(main, ["outline", "sample.py", "--path", str(sample_codebase)])

    assert result.exit_code == 0
    assert "hello_world" in result.output
    assert "Calculator" in result.output


def test_status_before_index(runner, sample_codebase):
    result = runner.invoke(main, ["status", "--path", str(sample_codebase)])

    assert result.exit_code == 0
    assert "No index found" in result.output


def test_index_then_search(runner, sample_codebase, fake_default_provider):
    indexed = runner.invoke(main, ["index", "--path", str(sample_codebase)])
    assert indexed.exit_code == 0
    assert "Indexing complete" in indexed.output

    result = runner.invoke(main, ["search", "utility function", "--path", str(sample_codebase), "-n", "1"])
    assert result.exit_code == 0
    assert "src/utils.py:1-3" in result.output


def test_search_before_index(runner, sample_codebase, fake_default_provider):
    result = runner.invoke(main, ["search", "anything", "--path", str(sample_codebase)])

    assert result.exit_code == 1
    assert "not indexed" in result.output


def test_history_and_diff(runner, sample_codebase, fake_default_provider):
    runner.invoke(main, ["index", "--path", str(sample_codebase)])

    empty = runner.invoke(main, ["history", "src/utils.py", "--path", str(sample_codebase)])
    assert "No snapshots" in empty.output

    diff = runner.invoke(main, ["diff", "src/utils.py", "--path", str(sample_codebase)])
    assert diff.exit_code == 1


def test_clean(runner, sample_codebase, fake_default_provider):
    runner.invoke(main, ["index", "--path", str(sample_codebase)])
    index_path = sample_codebase / ".siftd" / "index.json"
    assert index_path.exists()

    result = runner.invoke(main, ["clean", "--path", str(sample_codebase), "--yes"])

    assert result.exit_code == 0
    assert not index_path.exists()
