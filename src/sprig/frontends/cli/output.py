"""Output formatting for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from sprig.core.dag import TaskResult, TaskResults, iter_errors
from sprig.core.errors import CommandError, DependencyFailedError, SprigError, TestFailedError

STATUS_STYLES = {
    "succeeded": "green",
    "failed": "red",
    "pending": "yellow",
    "processing": "cyan",
}


def get_console(err: bool = False) -> Console:
    return Console(stderr=err, highlight=False)


def output_json(data: Any, indent: int = 2) -> None:
    """Output data as formatted JSON."""
    click.echo(json.dumps(data, indent=indent, default=str))


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def results_to_dict(results: TaskResults) -> dict[str, Any]:
    return {base_key: result.to_dict() for base_key, result in results.items()}


def print_results(results: TaskResults, console: Console | None = None) -> None:
    """Print one row per task, then every error with its dependency chain."""
    console = console or get_console()

    if not results:
        console.print("Nothing to do.")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Detail", overflow="fold")

    for base_key, result in sorted(results.items()):
        status = "failed" if result.error is not None else result.status.value
        table.add_row(
            base_key,
            Text(status, style=STATUS_STYLES.get(status, "")),
            f"{result.duration_ms / 1000:.1f}s" if result.duration_ms else "-",
            describe_output(result),
        )
    console.print(table)

    errors = list(iter_errors(results))
    if errors:
        console.print()
        for base_key, result in errors:
            print_error(base_key, result, console)


def describe_output(result: TaskResult) -> str:
    """One-line summary of a result for the table."""
    if result.error is not None:
        if isinstance(result.error, DependencyFailedError):
            return f"skipped, {result.error.dependency_key} failed"
        return str(result.error).splitlines()[0] if str(result.error) else type(result.error).__name__

    output = result.output
    if output is None:
        return result.description
    if getattr(output, "fresh", None) is False:
        return "up to date"
    if hasattr(output, "state"):
        return f"{output.state} {output.version or ''}".strip()
    if hasattr(output, "success"):
        return "passed" if output.success else "failed"
    return result.description


def print_error(base_key: str, result: TaskResult, console: Console | None = None) -> None:
    """Print an errored result with the chain of failed dependencies below it."""
    console = console or get_console()
    error = result.error
    console.print(Text(f"Failed {result.description} ({base_key})", style="bold red"))

    depth = 1
    while isinstance(error, DependencyFailedError):
        console.print(f"{'  ' * depth}because {error.dependency_key} failed")
        error = error.error
        depth += 1

    if error is not None:
        console.print(f"{'  ' * depth}{type(error).__name__}: {error}")
        output = _error_output(error)
        if output:
            for line in output.rstrip().splitlines()[-20:]:
                console.print(f"{'  ' * (depth + 1)}{line}", style="dim", markup=False)
    console.print()


def _error_output(error: BaseException) -> str:
    if isinstance(error, CommandError):
        return error.output
    if isinstance(error, TestFailedError):
        return str(error.detail.get("output", ""))
    return ""


def print_status(status: dict[str, Any], console: Console | None = None) -> None:
    """Print project status from OrchestrationContext.get_status()."""
    console = console or get_console()
    configured = "configured" if status["configured"] else "not configured"
    console.print(
        f"[bold]{status['project']}[/bold] "
        f"(provider: {status['provider']}, environment: {status['environment']}, {configured})"
    )

    modules = Table(title="Modules", box=None, title_justify="left")
    modules.add_column("Module")
    modules.add_column("Version")
    modules.add_column("Built")
    for name, info in sorted(status["modules"].items()):
        modules.add_row(name, info["version"], "yes" if info["built"] else "no")
    console.print(modules)

    if status["services"]:
        services = Table(title="Services", box=None, title_justify="left")
        services.add_column("Service")
        services.add_column("State")
        services.add_column("Version")
        for name, info in sorted(status["services"].items()):
            style = "green" if info["state"] == "ready" else "yellow"
            services.add_row(name, Text(info["state"], style=style), info["version"] or "-")
        console.print(services)


def print_sprig_error(error: SprigError) -> None:
    click.echo(f"Error: {error.message}", err=True)
    available = error.detail.get("available")
    if available:
        click.echo(f"Available: {', '.join(available)}", err=True)
