"""Shared utilities for CLI commands."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from sprig.core.config import CONFIG_FILENAME, find_project_root
from sprig.core.context import OrchestrationContext
from sprig.core.dag import TaskResults, count_errors
from sprig.core.errors import SprigError
from sprig.frontends.cli.output import (
    error_exit,
    get_console,
    output_json,
    print_results,
    print_sprig_error,
    results_to_dict,
)

T = TypeVar("T")


@dataclass
class CliState:
    """Options from the root command, shared with subcommands."""

    root: Path | None = None
    json_output: bool = False
    concurrency: int | None = None
    provider: str | None = None
    environment: str | None = None

    def project_root(self) -> Path:
        if self.root is not None:
            return self.root
        root = find_project_root()
        if root is None:
            error_exit(f"No {CONFIG_FILENAME} found in {Path.cwd()} or any parent directory")
        return root

    async def create_context(self) -> OrchestrationContext:
        return await OrchestrationContext.factory(
            self.project_root(),
            provider=self.provider,
            environment=self.environment,
            max_concurrency=self.concurrency,
        )


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine, turning sprig errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except SprigError as e:
        print_sprig_error(e)
        sys.exit(1)


def finish(state: CliState, results: TaskResults, header: str | None = None) -> None:
    """Report task results and exit non-zero if any task failed."""
    if state.json_output:
        output_json(results_to_dict(results))
    else:
        console = get_console()
        if header:
            console.print(f"[bold]{header}[/bold]")
        print_results(results, console)

    errors = count_errors(results)
    if errors:
        if not state.json_output:
            get_console(err=True).print(f"[red]{errors} task(s) failed[/red]")
        sys.exit(1)

    if not state.json_output:
        get_console().print("[green]Done![/green]")
