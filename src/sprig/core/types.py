"""Pure data types for sprig.core.

These are simple dataclasses with no behavior coupling.
They can be passed around, compared, and rendered anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskStatus(Enum):
    """Lifecycle states of a task node."""

    PENDING = "pending"  # Waiting on dependencies
    READY = "ready"  # All dependencies succeeded
    PROCESSING = "processing"  # process() in flight
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SUPERSEDED = "superseded"  # Replaced by a newer node with the same base key

    @property
    def is_live(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.READY, TaskStatus.PROCESSING)

    @property
    def is_settled(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


@dataclass
class TaskResult:
    """Result of one task, nested with the results of its dependencies.

    Attributes:
        type: Task variant tag ("build", "deploy", ...).
        description: Human-readable task label.
        output: Value returned by the task, None on failure.
        dependency_results: Results of the task's dependencies, by base key.
        error: Exception that failed the task, None on success.
        key: Concrete key of the node that produced this result.
        status: Terminal status of that node.
        duration_ms: Wall time spent in process(), 0 if never started.
    """

    type: str
    description: str
    output: Any = None
    dependency_results: dict[str, TaskResult] = field(default_factory=dict)
    error: BaseException | None = None
    key: str | None = None
    status: TaskStatus = TaskStatus.SUCCEEDED
    duration_ms: float = field(default=0.0, compare=False)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary.

        Outputs that are dataclasses or expose ``to_dict`` are converted,
        anything else falls back to ``repr``-safe primitives via ``str``.
        """
        return {
            "type": self.type,
            "description": self.description,
            "key": self.key,
            "status": self.status.value,
            "output": _to_jsonable(self.output),
            "error": str(self.error) if self.error is not None else None,
            "duration_ms": round(self.duration_ms, 1),
            "dependency_results": {
                base_key: result.to_dict() for base_key, result in self.dependency_results.items()
            },
        }

    def __repr__(self) -> str:
        state = f"error={self.error!r}" if self.error is not None else f"output={self.output!r}"
        deps = list(self.dependency_results)
        return f"TaskResult(type={self.type!r}, description={self.description!r}, {state}, deps={deps})"


TaskResults = dict[str, TaskResult]


def _to_jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, TaskResult):
        return value.to_dict()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_jsonable(v) for v in value]
    return str(value)
