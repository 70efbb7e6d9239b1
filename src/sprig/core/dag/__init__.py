"""Task graph orchestration.

Pure task scheduling - no providers, no config, no CLI awareness.
Just tasks, their identities, dependencies, and execution.

Classes:
    TaskGraph: Deduplicating, superseding graph of tasks.
    Task: Base class for a unit of work.
    TaskNode: Graph-internal state for one task key.
    TaskResult: Nested result of one task.
    TaskStatus: Node lifecycle status.

Example:
    >>> from sprig.core.dag import Task, TaskGraph
    >>>
    >>> class Fetch(Task):
    ...     type = "fetch"
    ...
    ...     async def process(self, dependency_results):
    ...         return await fetch_data()
    >>>
    >>> class Report(Task):
    ...     type = "report"
    ...
    ...     async def process(self, dependency_results):
    ...         return summarize(dependency_results["fetch"].output)
    >>>
    >>> graph = TaskGraph()
    >>> await graph.add_task(Report("report", dependencies=[Fetch("fetch")]))
    >>> results = await graph.process_tasks()
    >>> print(results["report"].output)
"""

from sprig.core.dag.graph import TaskGraph
from sprig.core.dag.node import TaskNode
from sprig.core.dag.results import assemble_results, count_errors, iter_errors
from sprig.core.dag.task import Task
from sprig.core.types import TaskResult, TaskResults, TaskStatus

__all__ = [
    "Task",
    "TaskGraph",
    "TaskNode",
    "TaskResult",
    "TaskResults",
    "TaskStatus",
    "assemble_results",
    "count_errors",
    "iter_errors",
]
