"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from tokbatch import __version__
from tokbatch.core.session import BatchSession
from tokbatch.exceptions import TokBatchError
from tokbatch.models.task import TaskStatus
from tokbatch.storage.config_manager import ConfigManager
from tokbatch.utils.path import read_sources

from .formatters import (
    print_config,
    print_failures,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("tokbatch")

app = typer.Typer(
    name="tokbatch",
    help=(
        "Resolve batches of TikTok links and pack the videos into one zip archive."
        " Use 'tokbatch <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "tokbatch"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """TokBatch CLI"""
    if version:
        console.print(f"[bold]tokbatch[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("tokbatch").setLevel(log_level)

    if show_config:
        config_manager = ConfigManager(CONFIG_FILE)
        try:
            config = config_manager.load_config()
        except TokBatchError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(code=1) from e
        config_data = {
            key: getattr(config, key) for key in config.get_ini_keys()
        }
        print_config(CONFIG_FILE, config_data)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing config without asking."
    ),
):
    """Write a configuration file with the default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config()
    except TokBatchError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready! Try: [cyan]tokbatch resolve <URL>[/cyan]")


def _read_urls_from_stdin() -> list[str]:
    """Reads links from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe links or redirect"
            " a file.[/yellow]"
        )
        raise typer.Exit(code=1)

    urls = []
    for line in sys.stdin:
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


@app.command(name="resolve")
def resolve_command(
    urls: list[str] | None = typer.Argument(  # noqa: B008
        None, help="One or more links, or paths to files containing links."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read links from standard input, one per line."
    ),
    archive: bool = typer.Option(
        True,
        "--archive/--no-archive",
        help="Download the resolved videos into a zip archive.",
    ),
    output_dir: str | None = typer.Option(
        None, "-o", "--output", help="Directory the archive is written to."
    ),
    group_size: int | None = typer.Option(
        None,
        "-g",
        "--group-size",
        help="Links resolved at the same time (default 1, mind the rate limit).",
    ),
    pacing: float | None = typer.Option(
        None, "--pacing", help="Seconds to wait between resolution groups."
    ),
    retry_failed: int = typer.Option(
        0,
        "--retry-failed",
        min=0,
        help="Re-run failed links up to this many extra passes.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Do not draw the live progress table."
    ),
):
    """Resolve links and pack the videos into a zip archive."""
    sources = list(urls or [])
    if stdin:
        sources.extend(_read_urls_from_stdin())
    if not sources:
        console.print(
            "[red]✗ No links provided.[/red] "
            "Use: [cyan]tokbatch resolve <URL>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    cli_options = {
        key: value
        for key, value in {
            "output_dir": output_dir,
            "group_size": group_size,
            "pacing_delay": pacing,
        }.items()
        if value is not None
    }

    try:
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        links = read_sources(sources, config.source_domain)
    except TokBatchError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[bold red]Could not read links: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    if not links:
        console.print(
            f"[yellow]⚠️  No links pointing at {config.source_domain} were found.[/yellow]"
        )
        raise typer.Exit(code=1)

    async def _resolve_async():
        archive_path = None
        async with BatchSession.from_config(config) as session:
            session.add_links(links)
            console.print(f"[bold cyan]🎬 Resolving {len(links)} links...[/bold cyan]")

            async with ProgressManager(console, session.store, quiet=quiet):
                await session.run_batch()
                for attempt in range(retry_failed):
                    if not session.store.tasks(TaskStatus.FAILED):
                        break
                    log.info(f"Retry pass {attempt + 1}/{retry_failed}")
                    await session.retry_all_failed()

            if archive:
                console.print("[cyan]Packing videos into archive...[/cyan]")
                archive_path = await session.save_archive()

            print_failures(session.store.tasks(TaskStatus.FAILED))
            print_summary_panel(
                session.stats, session.summary(), session.elapsed(), archive_path
            )

    try:
        asyncio.run(_resolve_async())
    except TokBatchError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_validation_table(config)
    except TokBatchError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
