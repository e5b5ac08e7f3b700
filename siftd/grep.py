"""
Exact-match search over project files.

Grep bypasses the vector index entirely: it walks the discovered files and
scans them line by line, so it works before the first index run and always
sees the current content on disk.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from .discovery import FileDiscovery, relative_posix
from .errors import InvalidPatternError
from .models import GrepMatch, GrepResult

logger = logging.getLogger(__name__)


def compile_pattern(pattern: str, is_regex: bool = False, case_sensitive: bool = True) -> re.Pattern:
    """
    Compile a grep pattern.

    Args:
        pattern: Literal text, or a regular expression when ``is_regex``
        is_regex: Interpret ``pattern`` as a regular expression
        case_sensitive: Match case exactly

    Raises:
        InvalidPatternError: If ``pattern`` is not a valid regular expression
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    source = pattern if is_regex else re.escape(pattern)
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise InvalidPatternError(f"Invalid regex: {e}") from e


class CodeGrep:
    """Line-oriented exact search over the files discovery yields."""

    def __init__(self, project_root: Path, discovery: FileDiscovery):
        self.project_root = Path(project_root)
        self.discovery = discovery

    def search(
        self,
        pattern: str,
        is_regex: bool = False,
        case_sensitive: bool = True,
        limit: int = 50,
        context_lines: int = 2,
        file_filter: Optional[str] = None,
        ext_filter: Optional[str] = None,
    ) -> GrepResult:
        """
        Find lines matching ``pattern``.

        Args:
            pattern: Text or regular expression to look for
            is_regex: Interpret ``pattern`` as a regular expression
            case_sensitive: Match case exactly
            limit: Stop after this many matches
            context_lines: Lines of context before and after each match
            file_filter: Substring the file name must contain
            ext_filter: Extension the file must have ('py' or '.py')

        Returns:
            Matches in file then line order; ``truncated`` is set when the
            scan stopped at ``limit``

        Raises:
            InvalidPatternError: If a regex pattern does not compile
        """
        regex = compile_pattern(pattern, is_regex, case_sensitive)
        suffix = None
        if ext_filter:
            suffix = ext_filter.lower() if ext_filter.startswith(".") else f".{ext_filter.lower()}"

        matches: list[GrepMatch] = []
        if limit <= 0:
            return GrepResult(pattern=pattern, matches=matches, total=0, truncated=False)

        for file_path in self.discovery.discover(self.project_root):
            if file_filter and file_filter not in file_path.name:
                continue
            if suffix and file_path.suffix.lower() != suffix:
                continue

            try:
                text = file_path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug(f"Skipping unreadable file {file_path}: {e}")
                continue

            lines = text.replace("\r\n", "\n").split("\n")
            rel_path = relative_posix(self.project_root, file_path)

            for i, line in enumerate(lines):
                if not regex.search(line):
                    continue
                start = max(0, i - context_lines)
                end = min(len(lines), i + context_lines + 1)
                matches.append(GrepMatch(
                    file=rel_path,
                    line_number=i + 1,
                    match=line.strip(),
                    context="\n".join(lines[start:end]),
                ))
                if len(matches) >= limit:
                    logger.debug(f"Grep for {pattern!r} stopped at limit {limit}")
                    return GrepResult(pattern=pattern, matches=matches, total=len(matches), truncated=True)

        return GrepResult(pattern=pattern, matches=matches, total=len(matches), truncated=False)
