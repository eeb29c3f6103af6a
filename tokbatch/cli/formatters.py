"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tokbatch.models.config import BatchConfig
from tokbatch.models.stats import BatchStats
from tokbatch.models.summary import BatchSummary
from tokbatch.models.task import Task
from tokbatch.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `tokbatch init --force` to write a fresh default config.",
        ],
        "ArchiveError": [
            "• Make sure the output directory exists and is writable.",
            "• Check that there is enough free disk space.",
        ],
        "AllRelaysExhaustedError": [
            "• Every relay refused the request; they may be temporarily down.",
            "• Check your internet connection.",
            "• Please try again in a few minutes.",
        ],
        "ResolutionFailedError": [
            "• The link may be private, deleted or mistyped.",
            "• If the message mentions a limit, lower --group-size or raise --pacing.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The resolution service might be temporarily unavailable.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate network throttling.",
            "• Check your internet speed.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in sorted(config_data.items()))
    console.print(
        Panel(
            content or "[dim](defaults)[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: BatchConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Resolve Endpoint:", config.resolve_endpoint)
    table.add_row("Source Domain:", config.source_domain)
    table.add_row(
        "Resolution:",
        f"{config.group_size} per group, {config.pacing_delay:g}s between groups",
    )
    table.add_row(
        "Rate Limit Retries:",
        f"{config.max_rate_limit_retries} "
        f"(from {config.rate_limit_base_delay:g}s, +{config.rate_limit_step_delay:g}s each)",
    )
    table.add_row(
        "Timeouts:",
        f"{config.metadata_timeout:g}s metadata, {config.binary_timeout:g}s video",
    )
    table.add_row("Archive Downloads:", f"{config.archive_group_size} at a time")
    table.add_row(
        "Archive Path:", f"[dim]{Path(config.output_dir) / config.archive_name}[/dim]"
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_failures(tasks: list[Task]):
    """Lists failed links together with their reasons."""
    if not tasks:
        return
    console = Console()
    table = Table(title="Failed Links", box=box.SIMPLE)
    table.add_column("Link", style="cyan", overflow="fold")
    table.add_column("Reason", style="red")
    for task in tasks:
        table.add_row(task.source_url, task.error_message or "")
    console.print(table)


def print_summary_panel(
    stats: BatchStats,
    summary: BatchSummary,
    duration_s: float,
    archive_path: Path | None = None,
):
    """Displays the final summary of the session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("Batch:", f"[bold]{summary.folder_name}[/bold]")
    stats_table.add_row("✓ Resolved:", f"[bold green]{summary.total_videos}[/bold green]")
    if stats.failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.failed}[/bold red]")
    if stats.cancelled > 0:
        stats_table.add_row("○ Not Started:", f"[yellow]{stats.cancelled}[/yellow]")

    if archive_path is not None:
        stats_table.add_row("", "")
        stats_table.add_row("Archived:", f"[green]{stats.archived}[/green]")
        if stats.placeholders > 0:
            stats_table.add_row(
                "⚠ Placeholders:", f"[yellow]{stats.placeholders}[/yellow]"
            )
        stats_table.add_row("Archive Size:", f"[cyan]{format_size(stats.archive_size)}[/cyan]")
        stats_table.add_row("Saved To:", f"[dim]{archive_path}[/dim]")

    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if stats.failed == 0 and stats.placeholders == 0:
        title = "🎬 [bold]Batch Complete![/bold]"
        border_color = "green"
    else:
        title = "🎬 [bold]Batch Finished With Errors[/bold]"
        border_color = "yellow"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
