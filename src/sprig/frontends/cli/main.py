"""CLI entry point."""

from __future__ import annotations

import sys
from pathlib import Path

import rich_click as click
from rich.text import Text

from sprig.core.dag import TaskResults
from sprig.core.logging_config import configure_logging
from sprig.frontends.cli.output import (
    get_console,
    output_json,
    print_results,
    print_status,
    results_to_dict,
)
from sprig.frontends.cli.utils import CliState, finish, run_async
from sprig.providers import RunResult
from sprig.tasks import BuildTask, DeployTask, TestTask

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.MAX_WIDTH = 100

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# =========================================================================
# Root CLI
# =========================================================================
@click.group()
@click.version_option(package_name="sprig")
@click.option(
    "--root",
    "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: nearest directory with a sprig.yml)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (or SPRIG_LOG_LEVEL)",
)
@click.option("--json", "-j", "json_output", is_flag=True, help="Output results as JSON")
@click.option("--provider", default=None, help="Override the configured provider")
@click.option("--env", "environment", default=None, help="Override the configured environment")
@click.option(
    "--concurrency",
    "-c",
    type=click.IntRange(min=1),
    default=None,
    help="Max tasks processed at once (default: unbounded)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    root: Path | None,
    log_level: str | None,
    json_output: bool,
    provider: str | None,
    environment: str | None,
    concurrency: int | None,
) -> None:
    """Sprig - build, deploy and test your project's modules.

    Every command turns its arguments into tasks, and sprig runs them in
    dependency order: modules are built before the services that use them
    are deployed, and services are deployed before the tests that need them.

    **Commands:**

        sprig build      Build modules

        sprig deploy     Deploy services

        sprig test       Run module tests

        sprig run        Run a service or a single test ad hoc

        sprig status     Show build and service status
    """
    configure_logging(level=log_level)
    ctx.obj = CliState(
        root=root,
        json_output=json_output,
        concurrency=concurrency,
        provider=provider,
        environment=environment,
    )


# =========================================================================
# Task commands
# =========================================================================
@cli.command()
@click.argument("modules", nargs=-1)
@click.option("--force", "-f", is_flag=True, help="Force rebuild of module(s)")
@click.pass_obj
def build(state: CliState, modules: tuple[str, ...], force: bool) -> None:
    """Build modules (all of them when none are given).

    **Examples:**

        sprig build

        sprig build api worker --force
    """

    async def _build() -> TaskResults:
        ctx = await state.create_context()
        await ctx.configure_environment()
        for module in ctx.get_modules(modules).values():
            await ctx.add_task(BuildTask(ctx, module, force=force))
        return await ctx.process_tasks()

    finish(state, run_async(_build()), header="Build")


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--force", "-f", is_flag=True, help="Redeploy even if the version is already deployed")
@click.option("--force-build", is_flag=True, help="Force rebuild of modules")
@click.pass_obj
def deploy(state: CliState, services: tuple[str, ...], force: bool, force_build: bool) -> None:
    """Deploy services (all of them when none are given).

    Services a deployed service depends on are deployed too.

    **Examples:**

        sprig deploy

        sprig deploy web --force-build
    """

    async def _deploy() -> TaskResults:
        ctx = await state.create_context()
        await ctx.configure_environment()
        for service in ctx.get_services(services).values():
            await ctx.add_task(DeployTask(ctx, service, force=force, force_build=force_build))
        return await ctx.process_tasks()

    finish(state, run_async(_deploy()), header="Deploy")


@cli.command()
@click.argument("modules", nargs=-1)
@click.option("--name", "-n", "test_name", default=None, help="Only run tests with this name")
@click.option("--force", "-f", is_flag=True, help="Re-run tests that already passed")
@click.option("--force-build", is_flag=True, help="Force rebuild of modules")
@click.pass_obj
def test(
    state: CliState,
    modules: tuple[str, ...],
    test_name: str | None,
    force: bool,
    force_build: bool,
) -> None:
    """Run module tests (all modules when none are given).

    **Examples:**

        sprig test

        sprig test api --name integ --force
    """

    async def _test() -> TaskResults:
        ctx = await state.create_context()
        await ctx.configure_environment()
        for module in ctx.get_modules(modules).values():
            for name, test_spec in module.tests.items():
                if test_name and name != test_name:
                    continue
                await ctx.add_task(
                    TestTask(ctx, module, test_spec, force=force, force_build=force_build)
                )
        return await ctx.process_tasks()

    finish(state, run_async(_test()), header="Test")


# =========================================================================
# Run commands
# =========================================================================
@cli.group()
def run() -> None:
    """Run a service or a test ad hoc, after building what it needs."""


@run.command("service")
@click.argument("name")
@click.option("--force-build", is_flag=True, help="Force rebuild of module")
@click.pass_obj
def run_service(state: CliState, name: str, force_build: bool) -> None:
    """Run an ad-hoc instance of the specified service."""

    async def _run() -> tuple[TaskResults, RunResult | None]:
        ctx = await state.create_context()
        service = ctx.get_service(name)
        await ctx.configure_environment()

        await ctx.add_task(BuildTask(ctx, service.module, force=force_build))
        for dependency in ctx.get_services(service.dependencies).values():
            await ctx.add_task(DeployTask(ctx, dependency, force_build=force_build))
        results = await ctx.process_tasks()
        if any(r.error for r in results.values()):
            return results, None

        runtime_context = ctx.prepare_runtime_context(
            service.module, ctx.get_services(service.dependencies).values(), results
        )
        return results, await ctx.run_service(service, runtime_context)

    results, run_result = run_async(_run())
    _report_run(state, results, run_result)


@run.command("test")
@click.argument("module")
@click.argument("test_name", metavar="TEST")
@click.option("--force-build", is_flag=True, help="Force rebuild of module")
@click.pass_obj
def run_test(state: CliState, module: str, test_name: str, force_build: bool) -> None:
    """Run the specified module test, even if it passed before."""

    async def _run() -> tuple[TaskResults, RunResult | None]:
        ctx = await state.create_context()
        test_spec = ctx.get_test(module, test_name)
        target = ctx.get_module(module)
        await ctx.configure_environment()

        await ctx.add_task(BuildTask(ctx, target, force=force_build))
        for dependency in ctx.get_services(test_spec.dependencies).values():
            await ctx.add_task(DeployTask(ctx, dependency, force_build=force_build))
        results = await ctx.process_tasks()
        if any(r.error for r in results.values()):
            return results, None

        runtime_context = ctx.prepare_runtime_context(
            target, ctx.get_services(test_spec.dependencies).values(), results
        )
        return results, await ctx.test_module(target, test_spec, runtime_context)

    results, run_result = run_async(_run())
    _report_run(state, results, run_result)


def _report_run(state: CliState, results: TaskResults, run_result: RunResult | None) -> None:
    if run_result is None:
        finish(state, results)
        return

    if state.json_output:
        output_json({"tasks": results_to_dict(results), "result": run_result.to_dict()})
    else:
        console = get_console()
        print_results(results, console)
        console.print(Text(f"$ {run_result.command}", style="bold"))
        click.echo(run_result.output, nl=False)

    exit_code = run_result.exit_code
    if exit_code != 0:
        sys.exit(exit_code if isinstance(exit_code, int) and exit_code > 0 else 1)


# =========================================================================
# Status
# =========================================================================
@cli.command()
@click.pass_obj
def status(state: CliState) -> None:
    """Show module build state and service deploy state."""

    async def _status() -> dict:
        ctx = await state.create_context()
        return await ctx.get_status()

    data = run_async(_status())
    if state.json_output:
        output_json(data)
    else:
        print_status(data)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
