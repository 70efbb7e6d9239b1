"""Task definition."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sprig.core.types import TaskResults


class Task(ABC):
    """A unit of work in a task graph.

    Tasks don't know about nodes, scheduling, or each other's state. They
    carry an identity, a list of tasks they depend on, and a ``process``
    coroutine that receives the results of those dependencies.

    Identity has two levels:
        base key: the logical unit ("build.api"). Two live tasks with the
            same base key can't coexist in a graph; the newer one supersedes.
        key: a concrete attempt at that unit ("build.api.v-1a2b3c").
            Re-adding a task with a known key is a no-op.

    Subclasses set ``type`` and implement ``process``; most also override
    ``get_key`` to include a version or instance id.

    Example:
        >>> class Echo(Task):
        ...     type = "echo"
        ...
        ...     async def process(self, dependency_results):
        ...         return self.name
        >>>
        >>> a = Echo("a")
        >>> b = Echo("b", dependencies=[a])
        >>> await graph.add_task(b)   # registers a as well
    """

    type: str = "task"

    def __init__(self, name: str, dependencies: list[Task] | None = None) -> None:
        self.name = name
        self.dependencies: list[Task] = list(dependencies or [])

    def get_name(self) -> str:
        return self.name

    def get_base_key(self) -> str:
        return self.name

    def get_key(self) -> str:
        return self.get_base_key()

    def get_description(self) -> str:
        return self.get_key()

    async def get_dependencies(self) -> list[Task]:
        """Tasks that must succeed before this one is processed.

        Override to compute dependencies lazily (e.g. from a provider).
        """
        return self.dependencies

    @abstractmethod
    async def process(self, dependency_results: TaskResults) -> Any:
        """Do the work.

        Args:
            dependency_results: Final results of this task's dependencies,
                keyed by their base key.

        Returns:
            Output stored on this task's result.

        Raises:
            Exception: Any exception fails this task and its dependents.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.get_key()!r})"
