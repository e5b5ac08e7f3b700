"""
MCP server for siftd.

Exposes siftd functionality to MCP clients over stdio. Every tool returns a
JSON-compatible dict; failures come back as ``{"error": message}`` instead of
propagating to the transport.
"""

import argparse
import functools
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from mcp.server.fastmcp import FastMCP

from .config import ENV_PROJECT_PATH
from .errors import ConfigurationError, SiftdError
from .logging_config import setup_logging
from .project import Project, ProjectHost

logger = logging.getLogger(__name__)

ToolResult = dict[str, Any]


def _tool_errors(func: Callable[..., ToolResult]) -> Callable[..., ToolResult]:
    """Turn exceptions raised by a tool into error payloads."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> ToolResult:
        try:
            return func(*args, **kwargs)
        except (SiftdError, FileNotFoundError, ValueError) as e:
            logger.warning(f"{func.__name__} failed: {e}")
            return {"error": str(e)}
        except Exception as e:
            logger.error(f"{func.__name__} failed: {e}", exc_info=True)
            return {"error": str(e)}
    return wrapper


def build_tools(host: ProjectHost) -> dict[str, Callable[..., ToolResult]]:
    """
    Create the tool functions bound to ``host``.

    Returns:
        Tool functions by name, in registration order
    """

    @_tool_errors
    def search_code(
        query: str,
        limit: int = 8,
        file_filter: Optional[str] = None,
        ext_filter: Optional[str] = None,
    ) -> ToolResult:
        """
        Semantic code search: find code by meaning, not exact text.

        Args:
            query: Natural language description of the code you are looking for
            limit: Maximum number of results (default: 8)
            file_filter: Only return chunks whose path contains this text
            ext_filter: Only return chunks from files with this extension (e.g. ".py")
        """
        hits = host.project.search(query, limit=limit, file_filter=file_filter, ext_filter=ext_filter)
        results = [
            {
                "file": hit.chunk.file_path,
                "line_start": hit.chunk.line_start,
                "line_end": hit.chunk.line_end,
                "kind": hit.chunk.kind.value,
                "name": hit.chunk.name,
                "score": round(hit.score, 4),
                "code": hit.chunk.text,
            }
            for hit in hits
        ]
        logger.info(f"Search for '{query}' returned {len(results)} results")
        return {"query": query, "count": len(results), "results": results}

    @_tool_errors
    def grep_code(
        pattern: str,
        is_regex: bool = False,
        case_sensitive: bool = True,
        limit: int = 50,
        context_lines: int = 2,
        file_filter: Optional[str] = None,
        ext_filter: Optional[str] = None,
    ) -> ToolResult:
        """
        Exact text or regex search across project files, with surrounding context.

        Args:
            pattern: Text (or regular expression when is_regex) to find
            is_regex: Treat pattern as a regular expression
            case_sensitive: Match case exactly (default: true)
            limit: Maximum number of matches (default: 50)
            context_lines: Lines of context around each match (default: 2)
            file_filter: Only search files whose name contains this text
            ext_filter: Only search files with this extension (e.g. ".js")
        """
        result = host.project.grep(
            pattern,
            is_regex=is_regex,
            case_sensitive=case_sensitive,
            limit=limit,
            context_lines=context_lines,
            file_filter=file_filter,
            ext_filter=ext_filter,
        )
        return result.model_dump(mode="json")

    @_tool_errors
    def file_outline(filepath: str, include_body: bool = False) -> ToolResult:
        """
        Structural overview of a file: classes, functions and methods with line ranges.

        Args:
            filepath: File path relative to the project root
            include_body: Include the first lines of each declaration
        """
        outline = host.project.outline(filepath, include_body=include_body)
        return outline.model_dump(mode="json", exclude_none=True)

    @_tool_errors
    def index_project(force: bool = False) -> ToolResult:
        """
        Index (or incrementally re-index) the current project.

        Args:
            force: Re-index every file even if unchanged
        """
        summary = host.project.index_project(force=force)
        return summary.model_dump(mode="json")

    @_tool_errors
    def reindex_file(filepath: str) -> ToolResult:
        """
        Re-index a single file after editing to keep search results current.
        Saves a snapshot for version tracking.

        Args:
            filepath: File path relative to the project root
        """
        return host.project.reindex_file(filepath).model_dump(mode="json")

    @_tool_errors
    def file_history(filepath: str) -> ToolResult:
        """
        List saved snapshots of a file, newest first.

        Args:
            filepath: File path relative to the project root
        """
        return host.project.history(filepath).model_dump(mode="json")

    @_tool_errors
    def file_diff(filepath: str, old_index: int = 1, new_index: int = 0) -> ToolResult:
        """
        Diff between two snapshots of a file.

        Args:
            filepath: File path relative to the project root
            old_index: Older snapshot (0 = latest, 1 = previous)
            new_index: Newer snapshot (0 = latest, -1 = live file on disk)
        """
        return host.project.diff(filepath, old_ref=old_index, new_ref=new_index).model_dump(mode="json")

    @_tool_errors
    def project_stats() -> ToolResult:
        """Index statistics: chunk counts by kind and extension, files tracked, model."""
        return host.project.stats().model_dump(mode="json")

    @_tool_errors
    def set_project(path: str) -> ToolResult:
        """
        Switch to another project directory. Loads its cached index when usable.

        Args:
            path: Absolute path of the project root
        """
        project = host.set_project(path)
        stats = project.stats()
        return {
            "project": str(project.root),
            "indexed": stats.is_indexed,
            "total_chunks": stats.total_chunks,
        }

    tools = [
        search_code,
        grep_code,
        file_outline,
        index_project,
        reindex_file,
        file_history,
        file_diff,
        project_stats,
        set_project,
    ]
    return {tool.__name__: tool for tool in tools}


def create_server(host: ProjectHost) -> FastMCP:
    """Build a FastMCP server whose tools operate on ``host``'s project."""
    mcp = FastMCP("siftd")
    for tool in build_tools(host).values():
        mcp.tool()(tool)
    return mcp


def _warm_model(project: Project) -> None:
    """Load the embedding model in the background so the first search is fast."""
    def warm():
        try:
            logger.debug("Background warming: loading embedding model")
            project.provider.embed("warmup")
            logger.debug("Background warming: embedding model loaded")
        except Exception as e:
            logger.debug(f"Background warming failed (non-critical): {e}")

    threading.Thread(target=warm, daemon=True).start()


def main():
    """Entry point for the MCP server."""
    parser = argparse.ArgumentParser(description="siftd MCP server for code search")
    parser.add_argument(
        "--project-root",
        type=Path,
        default=os.environ.get(ENV_PROJECT_PATH),
        help=f"Root directory of the project (default: ${ENV_PROJECT_PATH})",
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    args = parser.parse_args()

    setup_logging(level=args.log_level)

    host = ProjectHost()
    if args.project_root:
        try:
            project = host.set_project(args.project_root)
            _warm_model(project)
        except ConfigurationError as e:
            logger.error(f"{e}. Use the set_project tool to choose a project.")
    else:
        logger.info(f"No project configured; set {ENV_PROJECT_PATH} or call set_project")

    logger.info("Starting siftd MCP server...")
    create_server(host).run()


if __name__ == "__main__":
    main()
