"""
Command-line interface for siftd.

Provides commands for initializing, indexing, searching, and inspecting
a project's code index and file history.
"""

import logging
import shutil
import sys
import threading
from pathlib import Path
from typing import NoReturn, Union
import click
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.syntax import Syntax
from rich.table import Table

from .config import Config, DATA_DIR_NAME
from .errors import SiftdError
from .logging_config import setup_logging, setup_logging_from_config
from .progress import ProgressEvent, ProgressReporter, ProgressStage
from .project import Project
from .snapshots import LIVE, SnapshotRef
from . import __version__

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

DEFAULT_CONFIG_TOML = """# siftd configuration

[indexer]
# Added to the built-in extension list
extra_extensions = []
exclude_dirs = [
    "node_modules",
    ".git",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
    ".siftd",
]
max_file_size = 1048576  # 1MB
max_chunk_chars = 1500
respect_gitignore = true
prune_deleted = true

[embeddings]
model = "all-MiniLM-L6-v2"
batch_size = 16

[search]
default_limit = 8
grep_limit = 50
context_lines = 2

[logging]
level = "INFO"
"""

LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "jsx",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".go": "go",
    ".html": "html",
    ".htm": "html",
    ".vue": "html",
    ".svelte": "html",
    ".md": "markdown",
}


def _fail(error: Exception, prefix: str = "") -> NoReturn:
    console.print(f"[red]Error: {prefix}{escape(str(error))}[/red]")
    if logger.isEnabledFor(logging.DEBUG):
        raise error
    sys.exit(1)


def _open_project(ctx: click.Context, path: str) -> Project:
    """Load the project at ``path`` and configure logging from its config."""
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    try:
        config = Config(Path(path))
        setup_logging_from_config(config, level="DEBUG" if debug else None)
        return Project(config.project_root, config=config)
    except SiftdError as e:
        _fail(e)


def _parse_ref(value: str) -> SnapshotRef:
    """Snapshot position ("0", "1", "-1") or snapshot id."""
    try:
        return int(value)
    except ValueError:
        return value


path_option = click.option("--path", "-p", default=".", help="Project root path")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__, prog_name="siftd")
@click.pass_context
def main(ctx: click.Context, debug: bool):
    """siftd - Local semantic and exact code search with file history."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    setup_logging(level="DEBUG" if debug else "WARNING")


@main.command()
@path_option
def init(path: str):
    """Initialize siftd in a project."""
    project_root = Path(path).resolve()
    data_dir = project_root / DATA_DIR_NAME
    config_path = data_dir / "config.toml"

    if config_path.exists():
        console.print(f"[yellow]{DATA_DIR_NAME} already initialized at {data_dir}[/yellow]")
        return

    data_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TOML)

    console.print(f"[green]✓[/green] Initialized siftd at {project_root}")
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("\nNext steps:")
    console.print("  1. Run [cyan]siftd index[/cyan] to index your codebase")
    console.print("  2. Run [cyan]siftd search <query>[/cyan] to search your code")


@main.command()
@path_option
@click.option("--force", "-f", is_flag=True, help="Force re-indexing of all files")
@click.pass_context
def index(ctx: click.Context, path: str, force: bool):
    """Index a codebase for search."""
    project = _open_project(ctx, path)
    console.print(f"[cyan]Indexing {project.root}...[/cyan]")

    cancel_event = threading.Event()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        TextColumn("[cyan]ETA: {task.fields[eta]}"),
        console=console,
    ) as progress:
        tasks = {
            ProgressStage.SCAN: progress.add_task("Scanning files...", total=None, eta="calculating..."),
            ProgressStage.EMBED: progress.add_task("Embedding chunks...", total=None, eta="-", visible=False),
        }

        def progress_callback(event: ProgressEvent):
            description = (
                f"Scanning: {Path(event.item).name}" if event.stage == ProgressStage.SCAN
                else f"Embedding {event.item}"
            )
            progress.update(
                tasks[event.stage],
                total=event.total,
                completed=event.current,
                description=description,
                eta=ProgressReporter.format_eta(event.eta_seconds),
                visible=True,
            )

        try:
            summary = project.index_project(force=force, progress_callback=progress_callback,
                                            cancel_event=cancel_event)
        except KeyboardInterrupt:
            cancel_event.set()
            console.print("\n[yellow]Indexing interrupted; nothing was committed.[/yellow]")
            sys.exit(130)
        except SiftdError as e:
            _fail(e, "indexing failed: ")

    console.print("\n[green]✓ Indexing complete![/green]\n")
    console.print(str(summary))


@main.command()
@click.argument("query")
@path_option
@click.option("--limit", "-n", type=int, default=None, help="Maximum number of results")
@click.option("--file", "-f", "file_filter", help="Only files whose path contains this text")
@click.option("--ext", "-e", "ext_filter", help="Only files with this extension (e.g. .py)")
@click.pass_context
def search(ctx: click.Context, query: str, path: str, limit: int, file_filter: str, ext_filter: str):
    """Search the indexed codebase semantically.

    Examples:
      siftd search "authentication logic"
      siftd search "error handling" --ext .py --file src/
    """
    project = _open_project(ctx, path)
    console.print(f'[cyan]Searching:[/cyan] "{query}"\n')

    try:
        hits = project.search(query, limit=limit, file_filter=file_filter, ext_filter=ext_filter)
    except SiftdError as e:
        _fail(e)

    if not hits:
        console.print("[yellow]No results found.[/yellow]")
        return

    for i, hit in enumerate(hits, 1):
        chunk = hit.chunk
        header = (
            f"[bold]{i}. {chunk.file_path}:{chunk.line_start}-{chunk.line_end}[/bold] "
            f"[dim](score: {hit.score:.3f})[/dim]"
        )
        if chunk.name:
            header += f" [cyan]{chunk.kind.value}: {chunk.name}[/cyan]"
        console.print(header)

        syntax = Syntax(
            chunk.text,
            LANGUAGE_BY_EXTENSION.get(chunk.extension, "text"),
            theme="monokai",
            line_numbers=True,
            start_line=chunk.line_start,
        )
        console.print(syntax)
        console.print()


@main.command()
@click.argument("pattern")
@path_option
@click.option("--regex", "-r", "is_regex", is_flag=True, help="Treat PATTERN as a regular expression")
@click.option("--ignore-case", "-i", is_flag=True, help="Case-insensitive matching")
@click.option("--limit", "-n", type=int, default=None, help="Maximum number of matches")
@click.option("--context", "-C", "context_lines", type=int, default=None, help="Lines of context")
@click.option("--file", "-f", "file_filter", help="Only files whose name contains this text")
@click.option("--ext", "-e", "ext_filter", help="Only files with this extension")
@click.pass_context
def grep(ctx: click.Context, pattern: str, path: str, is_regex: bool, ignore_case: bool, limit: int,
         context_lines: int, file_filter: str, ext_filter: str):
    """Exact text or regex search over project files."""
    project = _open_project(ctx, path)
    try:
        result = project.grep(
            pattern,
            is_regex=is_regex,
            case_sensitive=not ignore_case,
            limit=limit,
            context_lines=context_lines,
            file_filter=file_filter,
            ext_filter=ext_filter,
        )
    except SiftdError as e:
        _fail(e)

    if not result.matches:
        console.print("[yellow]No matches found.[/yellow]")
        return

    for match in result.matches:
        console.print(f"[bold]{escape(match.file)}:{match.line_number}[/bold]  {escape(match.match)}", highlight=False)
    summary = f"\n{result.total} matches"
    if result.truncated:
        summary += " (limit reached)"
    console.print(f"[dim]{summary}[/dim]")


@main.command()
@click.argument("file")
@path_option
@click.option("--body", "include_body", is_flag=True, help="Show the first lines of each declaration")
@click.pass_context
def outline(ctx: click.Context, file: str, path: str, include_body: bool):
    """Show the classes and functions declared in FILE."""
    project = _open_project(ctx, path)
    try:
        result = project.outline(file, include_body=include_body)
    except (SiftdError, FileNotFoundError, ValueError) as e:
        _fail(e)

    table = Table(title=f"{result.file} ({result.total_lines} lines)")
    table.add_column("Lines", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Signature / docstring")

    for entry in result.outline:
        if entry.type == "file_info":
            table.add_row("-", "file", entry.name or "", f"{entry.total_lines} lines, {entry.extension or 'no extension'}")
            continue
        detail = entry.signature or ""
        if entry.docstring:
            detail += f"\n[dim]{entry.docstring}[/dim]"
        if entry.body_preview:
            detail += f"\n{entry.body_preview}"
        table.add_row(f"{entry.line_start}-{entry.line_end}", entry.type, entry.name or "", detail)

    console.print(table)


@main.command()
@click.argument("file")
@path_option
@click.pass_context
def history(ctx: click.Context, file: str, path: str):
    """List saved snapshots of FILE, newest first."""
    project = _open_project(ctx, path)
    try:
        result = project.history(file)
    except (SiftdError, ValueError) as e:
        _fail(e)

    if not result.snapshots:
        console.print(f"[yellow]No snapshots for {result.file}.[/yellow]")
        return

    table = Table(title=f"History of {result.file}")
    table.add_column("#", style="dim")
    table.add_column("Snapshot", style="cyan")
    table.add_column("Saved (UTC)")
    table.add_column("Size", justify="right")
    for i, snapshot in enumerate(result.snapshots):
        table.add_row(str(i), snapshot.id, snapshot.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                      f"{snapshot.size_bytes} B")
    console.print(table)


@main.command()
@click.argument("file")
@path_option
@click.option("--old", "old_ref", default="1", help="Older version: position (0 = latest) or snapshot id")
@click.option("--new", "new_ref", default="0", help="Newer version: position, snapshot id, or -1 for live")
@click.option("--live", is_flag=True, help="Compare against the file on disk")
@click.pass_context
def diff(ctx: click.Context, file: str, path: str, old_ref: str, new_ref: str, live: bool):
    """Diff two versions of FILE."""
    project = _open_project(ctx, path)
    new: Union[int, str] = LIVE if live else _parse_ref(new_ref)
    try:
        result = project.diff(file, old_ref=_parse_ref(old_ref), new_ref=new)
    except (SiftdError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]+{result.additions}[/green] [red]-{result.deletions}[/red]\n")
    console.print(Syntax(result.unified_text, "diff", theme="monokai"))


@main.command()
@path_option
@click.pass_context
def status(ctx: click.Context, path: str):
    """Show indexing statistics."""
    project = _open_project(ctx, path)
    stats = project.stats()

    if not stats.is_indexed:
        console.print("[yellow]No index found. Run 'siftd index' to create one.[/yellow]")
        return

    table = Table(title="Index Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Project", stats.project_root or str(project.root))
    table.add_row("Files tracked", str(stats.files_tracked))
    table.add_row("Total chunks", str(stats.total_chunks))
    table.add_row("Model", stats.provider or "-")
    table.add_row("Dimension", str(stats.dimension) if stats.dimension else "-")
    console.print(table)

    if stats.by_chunk_type:
        console.print("\n[bold]Chunk kinds:[/bold]")
        for kind, count in sorted(stats.by_chunk_type.items(), key=lambda x: -x[1]):
            console.print(f"  {kind}: {count}")
    if stats.by_extension:
        console.print("\n[bold]Extensions:[/bold]")
        for ext, count in sorted(stats.by_extension.items(), key=lambda x: -x[1]):
            console.print(f"  {ext}: {count}")


@main.command()
@path_option
@click.option("--snapshots", "include_snapshots", is_flag=True, help="Also delete all saved snapshots")
@click.confirmation_option(prompt="Are you sure you want to delete the index?")
def clean(path: str, include_snapshots: bool):
    """Remove the persisted index (and optionally snapshots)."""
    config = Config(Path(path))
    removed = False

    if config.index_path.exists():
        config.index_path.unlink()
        removed = True
    if include_snapshots and config.snapshot_dir.exists():
        shutil.rmtree(config.snapshot_dir)
        removed = True

    if removed:
        console.print("[green]✓ Cleared indexed data.[/green]")
    else:
        console.print("[yellow]No index found.[/yellow]")


@main.command()
@path_option
@click.option("--debounce", type=float, default=0.5, help="Seconds of quiet before re-indexing")
@click.pass_context
def watch(ctx: click.Context, path: str, debounce: float):
    """Keep the index current while files change."""
    from .watcher import FileWatcher

    project = _open_project(ctx, path)
    if not project.index.is_ready:
        console.print("[cyan]No usable index yet, running a full index first...[/cyan]")
        try:
            console.print(str(project.index_project()))
        except SiftdError as e:
            _fail(e, "indexing failed: ")

    def on_change(rel_path: str, event_type: str):
        console.print(f"[dim]{event_type}: {rel_path}[/dim]")

    console.print(f"[green]Watching {project.root}[/green] (Ctrl+C to stop)")
    FileWatcher(project, debounce_seconds=debounce).start(on_change=on_change)


@main.command()
def version():
    """Show siftd version."""
    console.print(f"siftd version {__version__}")


if __name__ == "__main__":
    main()
