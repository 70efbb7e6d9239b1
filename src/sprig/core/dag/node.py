"""Graph-internal bookkeeping for one task instance."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from sprig.core.dag.task import Task
from sprig.core.errors import TaskGraphError
from sprig.core.types import TaskStatus

# Allowed status transitions. SUPERSEDED is reachable from any live state.
_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.READY, TaskStatus.FAILED, TaskStatus.SUPERSEDED}
    ),
    TaskStatus.READY: frozenset({TaskStatus.PROCESSING, TaskStatus.SUPERSEDED}),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.SUPERSEDED}
    ),
    TaskStatus.SUCCEEDED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.SUPERSEDED: frozenset(),
}


@dataclass
class TaskNode:
    """Node attached to each distinct task key.

    Owned by a TaskGraph. ``dependency_keys`` always points at the node a
    dependent currently waits on, so it is rewritten when a dependency is
    superseded. ``declared_dependency_keys`` keeps what the task itself
    declared, for consistency checks on re-add.

    Attributes:
        task: The task this node runs.
        key: Concrete task key.
        base_key: Logical identity shared across superseding attempts.
        status: Current lifecycle status.
        dependency_keys: Keys of nodes this node waits on, in declared order.
        declared_dependency_keys: Keys declared by the task when added.
        dependents: Keys of nodes waiting on this node.
        output: Value returned by ``task.process`` on success.
        error: Failure recorded for this node.
        superseded_by: Key of the node that replaced this one.
    """

    task: Task
    key: str
    base_key: str
    status: TaskStatus = TaskStatus.PENDING
    dependency_keys: list[str] = field(default_factory=list)
    declared_dependency_keys: tuple[str, ...] = ()
    dependents: set[str] = field(default_factory=set)
    output: Any = None
    error: BaseException | None = None
    superseded_by: str | None = None
    started_at: float | None = field(default=None, repr=False)
    completed_at: float | None = field(default=None, repr=False)

    @property
    def type(self) -> str:
        return self.task.type

    @property
    def description(self) -> str:
        return self.task.get_description()

    @property
    def is_live(self) -> bool:
        return self.status.is_live

    @property
    def is_settled(self) -> bool:
        return self.status.is_settled

    @property
    def duration_s(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return self.completed_at - self.started_at

    def _transition(self, status: TaskStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise TaskGraphError(
                f"Illegal transition for '{self.key}': {self.status.value} -> {status.value}",
                detail={"key": self.key, "from": self.status.value, "to": status.value},
            )
        self.status = status

    def mark_ready(self) -> None:
        self._transition(TaskStatus.READY)

    def mark_processing(self) -> None:
        self._transition(TaskStatus.PROCESSING)
        self.started_at = time.monotonic()

    def mark_succeeded(self, output: Any) -> None:
        self._transition(TaskStatus.SUCCEEDED)
        self.output = output
        self.completed_at = time.monotonic()

    def mark_failed(self, error: BaseException) -> None:
        self._transition(TaskStatus.FAILED)
        self.error = error
        self.completed_at = time.monotonic()

    def mark_superseded(self, by_key: str) -> None:
        self._transition(TaskStatus.SUPERSEDED)
        self.superseded_by = by_key

    def add_dependency(self, key: str) -> None:
        if key not in self.dependency_keys:
            self.dependency_keys.append(key)

    def replace_dependency(self, old_key: str, new_key: str) -> None:
        """Point this node at ``new_key`` wherever it waited on ``old_key``."""
        replaced: list[str] = []
        for key in self.dependency_keys:
            key = new_key if key == old_key else key
            if key not in replaced:
                replaced.append(key)
        self.dependency_keys = replaced
