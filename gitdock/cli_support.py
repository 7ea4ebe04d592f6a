"""Shared utilities for gitdock CLI modules."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gitdock.models.deployment import PipelineReport, StepOutcome


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from gitdock.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Print a one-line error and exit.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    print_error(console, str(e))
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def render_report(console: Console, report: PipelineReport) -> None:
    """Print a per-step summary table for a pipeline run."""
    styles = {
        StepOutcome.SUCCESS: "[green]✓ success[/green]",
        StepOutcome.FAILURE: "[red]✗ failure[/red]",
        StepOutcome.SKIPPED: "[dim]- skipped[/dim]",
    }
    table = Table(title="Deployment summary", show_lines=False)
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    table.add_column("Details", overflow="fold")

    for result in report.results:
        outcome = styles[result.outcome]
        if result.warnings:
            outcome = "[yellow]⚠ warning[/yellow]"
        table.add_row(result.step, outcome, escape(result.message))

    console.print(table)
    for warning in report.warnings:
        print_warning(console, warning)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting."""
    console.print(f"[green]{prefix}[/green] {escape(message)}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {escape(message)}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {escape(message)}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[cyan]{prefix}[/cyan] {escape(message)}")
