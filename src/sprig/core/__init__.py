"""Core orchestration: task graph, project model and configuration.

Layers:
    dag/            Task graph (no knowledge of modules or providers)
    config.py       sprig.yml loading
    modules.py      Modules, services, tests, versions
    context.py      Per-command orchestration context
"""

from sprig.core.dag import Task, TaskGraph, TaskNode, TaskResult, TaskResults, TaskStatus
from sprig.core.errors import (
    CommandError,
    ConfigurationError,
    DependencyCycleError,
    DependencyFailedError,
    ParameterError,
    SprigError,
    TaskContractError,
    TaskGraphError,
    TestFailedError,
)

__all__ = [
    "CommandError",
    "ConfigurationError",
    "DependencyCycleError",
    "DependencyFailedError",
    "ParameterError",
    "SprigError",
    "Task",
    "TaskContractError",
    "TaskGraph",
    "TaskGraphError",
    "TaskNode",
    "TaskResult",
    "TaskResults",
    "TaskStatus",
    "TestFailedError",
]
