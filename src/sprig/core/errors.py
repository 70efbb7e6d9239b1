"""Sprig error types.

Two families live here:

- Contract errors (``TaskGraphError`` and subclasses) are raised directly by
  ``TaskGraph.add_task`` and abort the caller.
- Runtime errors (``DependencyFailedError``, ``CommandError``,
  ``TestFailedError``) are recorded on task results and never escape
  ``process_tasks``.
"""

from __future__ import annotations

from typing import Any


class SprigError(Exception):
    """Base error for sprig.

    Attributes:
        message: Human-readable message.
        detail: Structured context for logging and JSON output.
    """

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ConfigurationError(SprigError):
    """Project configuration is missing or invalid."""


class ParameterError(SprigError):
    """A command was called with arguments that don't match the project."""


class ProviderError(SprigError):
    """A provider failed outside of a single command invocation."""


class TaskGraphError(SprigError):
    """A task violates the graph's contract.

    Raised when:
    - A task has an empty or non-string key
    - Two tasks share a key but declare different dependencies
    - An illegal node status transition is attempted
    """


class TaskContractError(TaskGraphError):
    """Task identity or dependency declaration is malformed or inconsistent."""


class DependencyCycleError(TaskGraphError):
    """Adding a task would create a dependency cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            detail={"cycle": cycle},
        )
        self.cycle = cycle


class DependencyFailedError(SprigError):
    """A task was not processed because one of its dependencies failed."""

    def __init__(self, key: str, dependency_key: str, error: BaseException) -> None:
        super().__init__(
            f"Dependency '{dependency_key}' of '{key}' failed: {error}",
            detail={"key": key, "dependency_key": dependency_key},
        )
        self.key = key
        self.dependency_key = dependency_key
        self.error = error
        self.__cause__ = error

    @property
    def root_error(self) -> BaseException:
        """The action failure at the bottom of the chain."""
        error: BaseException = self
        while isinstance(error, DependencyFailedError):
            error = error.error
        return error


class CommandError(SprigError):
    """An external command exited non-zero or timed out."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_code: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message, detail={"command": command, "exit_code": exit_code})
        self.command = command
        self.exit_code = exit_code
        self.output = output


class TestFailedError(SprigError):
    """A module test ran to completion and reported failure."""

    __test__ = False  # keep pytest from collecting this class
