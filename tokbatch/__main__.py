"""
Entry point for `tokbatch` and `python -m tokbatch`.

Known failures are rendered as panels with suggestions. Anything else is reported
with a pointer to `-vv`, which prints the traceback.
"""

import asyncio
import logging
import sys

from rich.console import Console

from tokbatch.cli.app import app
from tokbatch.cli.formatters import format_error_with_suggestions
from tokbatch.exceptions import TokBatchError

log = logging.getLogger("tokbatch")


def _report_unexpected(console: Console, error: Exception) -> None:
    console.print(f"\n{format_error_with_suggestions(error, {'type': 'Unexpected'})}")
    if log.isEnabledFor(logging.DEBUG):
        log.exception("Unhandled error", exc_info=error)
    else:
        console.print("[dim]Run again with -vv to see the full traceback.[/dim]")


def main() -> None:
    """Runs the CLI; the Typer app exits the process itself on success."""
    console = Console(stderr=True)
    try:
        app()
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Interrupted; links not yet resolved were left pending.[/yellow]")
        sys.exit(130)
    except TokBatchError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(1)
    except Exception as e:
        _report_unexpected(console, e)
        sys.exit(1)


if __name__ == "__main__":
    main()
