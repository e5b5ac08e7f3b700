"""
Pytest fixtures for siftd tests.

Provides reusable test fixtures for temporary directories, sample projects,
a deterministic embedding provider, and ready-made projects.
"""

import hashlib
import re
import shutil
import tempfile
from pathlib import Path

import pytest

from siftd.config import Config
from siftd.embeddings import EmbeddingProvider
from siftd.project import Project


class FakeProvider(EmbeddingProvider):
    """
    Deterministic bag-of-words embedding provider.

    Every token is hashed into one of ``dim`` buckets, so texts that share
    words have a positive cosine similarity and identical texts score 1.0.
    """

    def __init__(self, dim: int = 128, name: str = "hash"):
        self.dim = dim
        self.name = name
        self.calls: list[list[str]] = []

    @property
    def signature(self) -> str:
        return f"fake:{self.name}-{self.dim}"

    @property
    def dimension(self) -> int:
        return self.dim

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dim
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self.dim
            vector[bucket] += 1.0
        return vector


class FailingProvider(FakeProvider):
    """Raises for any batch containing a marker string."""

    def __init__(self, marker: str, dim: int = 128):
        super().__init__(dim=dim)
        self.marker = marker

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if any(self.marker in text for text in texts):
            raise RuntimeError("embedding backend unavailable")
        return super().embed_batch(texts)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp()).resolve()
    yield temp_path
    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def sample_python_file(temp_dir):
    """Create a sample Python file with functions and classes."""
    python_code = '''"""Sample Python module for testing."""

import os


def hello_world():
    """Print hello world."""
    print("Hello, World!")
    return "Hello"


class Calculator:
    """A simple calculator class."""

    def add(self, a, b):
        """Add two numbers."""
        return a + b

    def subtract(self, a, b):
        """Subtract b from a."""
        return a - b


@staticmethod
def complex_function(x, y, z):
    """A more complex function with decorators."""
    result = x + y + z
    if result > 10:
        return result * 2
    return result
'''
    file_path = temp_dir / "sample.py"
    file_path.write_text(python_code)
    return file_path


@pytest.fixture
def sample_markdown_file(temp_dir):
    """Create a sample Markdown file."""
    markdown_content = '''# Sample Document

This is a sample markdown document for testing.

## Section 1

This is the first section with some content.
It has multiple lines.

## Section 2

This is the second section.
'''
    file_path = temp_dir / "README.md"
    file_path.write_text(markdown_content)
    return file_path


@pytest.fixture
def sample_codebase(temp_dir, sample_python_file, sample_markdown_file):
    """Create a small sample codebase with multiple files."""
    src_dir = temp_dir / "src"
    src_dir.mkdir()

    (src_dir / "utils.py").write_text('''def utility_function():
    """A utility function."""
    return "utility"
''')

    (src_dir / "main.py").write_text('''from utils import utility_function


def main():
    """Main entry point."""
    print(utility_function())


if __name__ == "__main__":
    main()
''')

    (src_dir / "notes.txt").write_text("remember to parse the config file\n")

    # Excluded directory, never indexed
    vendor_dir = temp_dir / "node_modules" / "lib"
    vendor_dir.mkdir(parents=True)
    (vendor_dir / "index.js").write_text("function vendored() { return 1; }\n")

    return temp_dir


@pytest.fixture
def config(temp_dir):
    """Create a test configuration."""
    return Config(project_root=temp_dir)


@pytest.fixture
def project(sample_codebase, fake_provider):
    """A project over the sample codebase, not yet indexed."""
    return Project(sample_codebase, provider=fake_provider)


@pytest.fixture
def indexed_project(project):
    """A project over the sample codebase after one full index run."""
    project.index_project()
    return project
