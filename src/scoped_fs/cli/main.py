"""
CLI for scoped-fs.

Reads files and searches directories through the same path gate an
agent would use, so access rules can be checked from a terminal.
"""

import asyncio
import logging
import sys
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from scoped_fs import __version__
from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import FileSystemError
from scoped_fs.filesystem.finder import FilenameTreeWalker
from scoped_fs.filesystem.reader import RestrictedFileReader
from scoped_fs.filesystem.search import ContentSearchEngine
from scoped_fs.settings.config import load_config

# Load environment variables
load_dotenv()

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Setup rich logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )
    # Keep asyncio's subprocess chatter out of normal runs
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _build_config(
    config_path: Optional[str], allow: tuple[str, ...], verbose: bool
) -> FileSystemAccessConfig:
    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    except ValueError as e:
        err_console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(1)

    setup_logging(verbose, config.log_level)

    filesystem = config.filesystem
    if allow:
        directories = [str(d) for d in filesystem.allowed_directories] + list(allow)
        filesystem = FileSystemAccessConfig(
            **{**filesystem.model_dump(), "allowed_directories": directories}
        )
    if not filesystem.allowed_directories:
        err_console.print(
            "[yellow]No allowed directories configured; every path will be denied. "
            "Use --allow or SCOPED_FS_ALLOWED_DIRECTORIES.[/yellow]"
        )
    return filesystem


def _run(coro):
    """Run a coroutine, turning filesystem errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except (FileSystemError, FileNotFoundError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Configuration file (YAML or JSON)",
)
@click.option(
    "--allow",
    "-a",
    multiple=True,
    help="Allowed directory (repeatable)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config_path: Optional[str], allow: tuple[str, ...], verbose: bool):
    """scoped-fs - restricted file reading and search for agents."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = _build_config(config_path, allow, verbose)


@cli.command()
@click.argument("path")
@click.option(
    "--offset",
    "-o",
    type=int,
    default=0,
    help="First line (0-based); negative reads from the end",
)
@click.option("--length", "-n", type=int, default=None, help="Maximum lines to read")
@click.pass_context
def read(ctx, path: str, offset: int, length: Optional[int]):
    """
    Read lines from a file.

    Examples:

        # Last 20 lines of a log
        scoped-fs -a /var/log/app read /var/log/app/server.log -o -20

        # Lines 100-149
        scoped-fs -a ~/project read ~/project/main.py -o 100 -n 50
    """
    reader = RestrictedFileReader(ctx.obj["config"])
    result = _run(reader.read_file(path, offset=offset, length=length))
    if result.is_image:
        console.print(f"[dim]{result.mime_type} image, {len(result.content)} base64 chars[/dim]")
    else:
        console.print(result.content, markup=False, highlight=False)


@cli.command()
@click.argument("pattern")
@click.argument("path")
@click.option("--glob", "-g", "file_pattern", default=None, help="File name glob (e.g. '*.py')")
@click.option("--case-sensitive", "-s", is_flag=True, help="Match case exactly")
@click.option("--context", "-C", "context_lines", type=int, default=0, help="Context lines")
@click.option("--max-results", "-m", type=int, default=None, help="Maximum matches")
@click.option("--hidden", is_flag=True, help="Search hidden files")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds")
@click.pass_context
def search(
    ctx,
    pattern: str,
    path: str,
    file_pattern: Optional[str],
    case_sensitive: bool,
    context_lines: int,
    max_results: Optional[int],
    hidden: bool,
    timeout: Optional[float],
):
    """
    Search file contents with a regular expression.

    Examples:

        scoped-fs -a ~/project search "def main" ~/project -g "*.py"
    """
    engine = ContentSearchEngine(ctx.obj["config"])
    options = {
        "file_pattern": file_pattern,
        "ignore_case": not case_sensitive,
        "context_lines": context_lines,
        "include_hidden": hidden,
    }
    if max_results is not None:
        options["max_results"] = max_results
    if timeout is not None:
        options["timeout_seconds"] = timeout

    try:
        query = engine.query(path, pattern, **options)
    except ValueError as e:
        err_console.print(f"[bold red]Invalid search:[/bold red] {e}")
        sys.exit(1)

    outcome = _run(engine.search(query))
    for match in outcome:
        console.print(
            f"[magenta]{match.file}[/magenta]:[green]{match.line}[/green]: {match.text}",
            highlight=False,
        )
    console.print(f"\n[dim]{len(outcome)} matches via {outcome.engine}[/dim]")
    if outcome.partial:
        console.print("[yellow]Search timed out, results are partial.[/yellow]")


@cli.command()
@click.argument("pattern")
@click.argument("path")
@click.option("--max-depth", "-d", type=int, default=None, help="Maximum depth")
@click.option("--max-results", "-m", type=int, default=None, help="Maximum results")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds")
@click.pass_context
def find(
    ctx,
    pattern: str,
    path: str,
    max_depth: Optional[int],
    max_results: Optional[int],
    timeout: Optional[float],
):
    """
    Find files and directories whose name contains PATTERN.

    Examples:

        scoped-fs -a ~/project find test ~/project -d 3
    """
    walker = FilenameTreeWalker(ctx.obj["config"])
    outcome = _run(
        walker.search_names(
            path,
            pattern,
            max_results=max_results,
            max_depth=max_depth,
            timeout_seconds=timeout,
        )
    )
    for found in outcome:
        console.print(found, highlight=False)
    console.print(f"\n[dim]{len(outcome)} paths[/dim]")
    if outcome.partial:
        console.print("[yellow]Search timed out, results are partial.[/yellow]")


@cli.command()
@click.argument("path")
@click.pass_context
def info(ctx, path: str):
    """Show metadata for a file or directory."""
    reader = RestrictedFileReader(ctx.obj["config"])
    details = _run(reader.get_file_info(path))

    table = Table(title=path, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in details.items():
        table.add_row(key, str(value))
    console.print(table)


@cli.command()
@click.argument("path")
@click.pass_context
def check(ctx, path: str):
    """Check whether a file may be read."""
    config: FileSystemAccessConfig = ctx.obj["config"]
    reader = RestrictedFileReader(config)
    allowed, reason = _run(reader.check_access(path))

    style = "green" if allowed else "red"
    directories = "\n".join(f"  • {d}" for d in config.allowed_directories) or "  (none)"
    console.print(
        Panel(
            f"[bold {style}]{'Allowed' if allowed else 'Denied'}[/bold {style}]\n"
            f"{reason}\n\n"
            f"[bold]Allowed directories:[/bold]\n{directories}",
            title=path,
        )
    )
    if not allowed:
        sys.exit(2)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
