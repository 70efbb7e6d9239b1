"""Sprig - build, deploy and test project modules as a task graph.

Sprig reads a project's ``sprig.yml``, turns the requested work into tasks
(build a module, deploy a service, run a test), and hands them to a task
graph that deduplicates, orders and runs them concurrently against a
provider.

Layers:
    core/       Task graph, project model, configuration
    tasks/      Build, deploy and test task variants
    providers/  Execution environments (local subprocesses)
    frontends/  Command line interface

Quick Start:
    >>> from sprig import OrchestrationContext
    >>> from sprig.tasks import DeployTask
    >>>
    >>> ctx = await OrchestrationContext.factory(".")
    >>> await ctx.configure_environment()
    >>> for service in ctx.get_services().values():
    ...     await ctx.add_task(DeployTask(ctx, service))
    >>> results = await ctx.process_tasks()
    >>> failed = [key for key, r in results.items() if r.error]

With just the graph:
    >>> from sprig.core.dag import Task, TaskGraph
    >>> graph = TaskGraph()
    >>> await graph.add_task(my_task)
    >>> results = await graph.process_tasks()
"""

from sprig.__version__ import __version__
from sprig.core import (
    SprigError,
    Task,
    TaskGraph,
    TaskResult,
    TaskResults,
    TaskStatus,
)
from sprig.core.context import OrchestrationContext

__all__ = [
    "OrchestrationContext",
    "SprigError",
    "Task",
    "TaskGraph",
    "TaskResult",
    "TaskResults",
    "TaskStatus",
    "__version__",
]
