"""
Unit tests for the MCP server tools.

The tool functions are exercised directly through ``build_tools`` with a
deterministic embedding provider.
"""

import pytest

from conftest import FakeProvider
from siftd.mcp_server import build_tools, create_server
from siftd.project import ProjectHost


@pytest.fixture
def host():
    return ProjectHost(provider_factory=lambda config: FakeProvider())


@pytest.fixture
def tools(host):
    return build_tools(host)


@pytest.fixture
def project_tools(tools, sample_codebase):
    """Tools with the sample codebase selected but not indexed."""
    tools["set_project"](path=str(sample_codebase))
    return tools


@pytest.fixture
def indexed_tools(project_tools):
    project_tools["index_project"]()
    return project_tools


def test_tool_names(tools):
    assert list(tools) == [
        "search_code",
        "grep_code",
        "file_outline",
        "index_project",
        "reindex_file",
        "file_history",
        "file_diff",
        "project_stats",
        "set_project",
    ]


def test_create_server(host):
    server = create_server(host)
    assert server.name == "siftd"


def test_tools_without_project_return_error(tools):
    result = tools["search_code"](query="anything")

    assert "error" in result
    assert "set_project" in result["error"]


def test_set_project(tools, sample_codebase):
    result = tools["set_project"](path=str(sample_codebase))

    assert result == {"project": str(sample_codebase), "indexed": False, "total_chunks": 0}


def test_set_project_invalid(tools, temp_dir):
    result = tools["set_project"](path=str(temp_dir / "missing"))
    assert "error" in result


def test_search_before_index(project_tools):
    result = project_tools["search_code"](query="utility")
    assert "not indexed" in result["error"].lower()


def test_index_project(project_tools):
    result = project_tools["index_project"]()

    assert result["files_total"] == 5
    assert result["chunks_new"] > 0
    assert result["cancelled"] is False


def test_search_code(indexed_tools):
    result = indexed_tools["search_code"](query="utility function", limit=3)

    assert result["query"] == "utility function"
    assert result["count"] == 3
    first = result["results"][0]
    assert first["file"] == "src/utils.py"
    assert first["kind"] == "function"
    assert first["name"] == "utility_function"
    assert first["line_start"] == 1
    assert "def utility_function" in first["code"]


def test_search_code_filters(indexed_tools):
    result = indexed_tools["search_code"](query="section", ext_filter="md")
    assert {r["file"] for r in result["results"]} == {"README.md"}


def test_grep_code(project_tools):
    result = project_tools["grep_code"](pattern="utility_function", context_lines=0)

    assert result["total"] == 3
    assert result["matches"][0] == {
        "file": "src/main.py",
        "line_number": 1,
        "match": "from utils import utility_function",
        "context": "from utils import utility_function",
    }


def test_grep_code_invalid_regex(project_tools):
    result = project_tools["grep_code"](pattern="(", is_regex=True)
    assert result["error"].startswith("Invalid regex")


def test_file_outline(project_tools):
    result = project_tools["file_outline"](filepath="sample.py")

    assert result["file"] == "sample.py"
    assert result["outline"][0]["name"] == "hello_world"
    assert "body_preview" not in result["outline"][0]


def test_file_outline_missing(project_tools):
    assert "error" in project_tools["file_outline"](filepath="missing.py")


def test_reindex_history_and_diff(indexed_tools, sample_codebase):
    first = indexed_tools["reindex_file"](filepath="src/utils.py")
    assert first["snapshot_id"]
    assert first["chunks"] == 1

    (sample_codebase / "src" / "utils.py").write_text('def utility_function():\n    return "v2"\n')
    indexed_tools["reindex_file"](filepath="src/utils.py")

    history = indexed_tools["file_history"](filepath="src/utils.py")
    assert history["total"] == 2
    assert history["snapshots"][1]["id"] == first["snapshot_id"]

    diff = indexed_tools["file_diff"](filepath="src/utils.py")
    assert diff["additions"] == 1
    assert diff["deletions"] == 2
    assert diff["unified_text"].startswith("---")


def test_file_diff_live(indexed_tools, sample_codebase):
    indexed_tools["reindex_file"](filepath="src/utils.py")
    (sample_codebase / "src" / "utils.py").write_text("changed\n")

    diff = indexed_tools["file_diff"](filepath="src/utils.py", old_index=0, new_index=-1)

    assert diff["new_label"] == "src/utils.py (live)"
    assert diff["deletions"] == 3


def test_file_diff_without_snapshots(indexed_tools):
    result = indexed_tools["file_diff"](filepath="src/utils.py")
    assert "No snapshots" in result["error"]


def test_project_stats(indexed_tools):
    result = indexed_tools["project_stats"]()

    assert result["is_indexed"] is True
    assert result["files_tracked"] == 5
    assert result["total_chunks"] > 0
