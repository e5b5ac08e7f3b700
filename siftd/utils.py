"""
Small shared helpers for siftd.
"""

import functools
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 0.5,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """
    Retry a callable when it raises one of ``exceptions``.

    The delay doubles after every failed attempt. The last exception is
    re-raised once ``max_attempts`` is exhausted.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {wait:.1f}s"
                    )
                    time.sleep(wait)
                    wait *= 2
        return wrapper  # type: ignore[return-value]
    return decorator


def atomic_write_text(path: Path, data: str, encoding: str = "utf-8") -> None:
    """
    Replace ``path`` with ``data`` in a single step.

    The content is written to a temporary file in the same directory and then
    moved over the target, so readers never observe a half-written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
