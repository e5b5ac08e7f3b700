"""
Tests for shared helpers.
"""

import pytest

from siftd.utils import atomic_write_text, retry_on_failure


class TestRetryOnFailure:
    def test_succeeds_after_retries(self):
        attempts = []

        @retry_on_failure(max_attempts=3, delay=0, exceptions=(ValueError,))
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ValueError("not yet")
            return "ok"

        assert flaky() == "ok"
        assert len(attempts) == 3

    def test_reraises_when_exhausted(self):
        @retry_on_failure(max_attempts=2, delay=0, exceptions=(ValueError,))
        def broken():
            raise ValueError("always")

        with pytest.raises(ValueError, match="always"):
            broken()

    def test_other_exceptions_not_retried(self):
        attempts = []

        @retry_on_failure(max_attempts=3, delay=0, exceptions=(ValueError,))
        def wrong_kind():
            attempts.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            wrong_kind()
        assert len(attempts) == 1


def test_atomic_write_replaces_file(temp_dir):
    target = temp_dir / "nested" / "index.json"

    atomic_write_text(target, "first")
    atomic_write_text(target, "second")

    assert target.read_text() == "second"
    assert [p.name for p in target.parent.iterdir()] == ["index.json"]
