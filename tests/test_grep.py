"""
Tests for exact-match search.
"""

import pytest

from siftd.errors import InvalidPatternError
from siftd.grep import compile_pattern


class TestCompilePattern:
    def test_literal_is_escaped(self):
        regex = compile_pattern("a.b(")
        assert regex.search("x a.b( y")
        assert not regex.search("axb(")

    def test_invalid_regex(self):
        with pytest.raises(InvalidPatternError):
            compile_pattern("def (", is_regex=True)


class TestCodeGrep:
    """Tests for CodeGrep via Project.grep."""

    def test_literal_matches_in_file_then_line_order(self, project):
        result = project.grep("utility_function")

        locations = [(m.file, m.line_number) for m in result.matches]
        assert locations == [("src/main.py", 1), ("src/main.py", 6), ("src/utils.py", 1)]
        assert result.total == 3
        assert not result.truncated

    def test_works_before_indexing(self, project):
        assert not project.index.is_ready
        assert project.grep("Calculator").total == 1

    def test_case_sensitivity(self, project):
        assert project.grep("hello, world").total == 0
        assert project.grep("hello, world", case_sensitive=False).total == 1

    def test_regex(self, project):
        result = project.grep(r"def \w+\(self", is_regex=True)

        assert [m.line_number for m in result.matches] == [15, 19]
        assert all(m.file == "sample.py" for m in result.matches)

    def test_context_lines(self, project):
        result = project.grep("class Calculator", context_lines=1)
        match = result.matches[0]

        assert match.match == "class Calculator:"
        assert match.context.split("\n") == ["", "class Calculator:", '    """A simple calculator class."""']

    def test_match_is_stripped(self, project):
        match = project.grep("return a + b").matches[0]
        assert match.match == "return a + b"

    def test_limit_truncates(self, project):
        result = project.grep("def ", limit=2)

        assert result.total == 2
        assert result.truncated

    def test_file_filter_matches_name(self, project):
        result = project.grep("utility", file_filter="utils")

        assert {m.file for m in result.matches} == {"src/utils.py"}

    def test_ext_filter(self, project):
        for ext in ("txt", ".txt"):
            result = project.grep("config", ext_filter=ext)
            assert [m.file for m in result.matches] == ["src/notes.txt"]

    def test_excluded_directories_skipped(self, project):
        assert project.grep("vendored").total == 0

    def test_invalid_pattern(self, project):
        with pytest.raises(InvalidPatternError):
            project.grep("[unclosed", is_regex=True)
