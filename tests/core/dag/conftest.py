"""Fixtures for task graph tests."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

import pytest

from sprig.core.dag import Task, TaskResults


class Recorder:
    """Records task starts and completions in the order they happen."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.calls: Counter[str] = Counter()

    def started(self, key: str) -> None:
        self.calls[key] += 1
        self.events.append(("start", key))

    def completed(self, key: str) -> None:
        self.events.append(("complete", key))

    @property
    def completion_order(self) -> list[str]:
        return [key for event, key in self.events if event == "complete"]

    def index(self, event: str, key: str) -> int:
        return self.events.index((event, key))


class RecordingTask(Task):
    """Task whose output echoes its key and the dependency results it got."""

    type = "test"

    def __init__(
        self,
        name: str,
        dependencies: list[Task] | None = None,
        recorder: Recorder | None = None,
        id: str = "",
        fail: Exception | None = None,
        callback: Callable[[RecordingTask], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(name, dependencies)
        self.id = id
        self.recorder = recorder or Recorder()
        self.fail = fail
        self.callback = callback

    def get_key(self) -> str:
        return f"{self.name}.{self.id}" if self.id else self.name

    async def process(self, dependency_results: TaskResults) -> Any:
        key = self.get_key()
        self.recorder.started(key)
        if self.callback:
            await self.callback(self)
        if self.fail is not None:
            raise self.fail
        self.recorder.completed(key)
        return {"result": f"result-{key}", "dependency_results": dependency_results}


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_task(recorder: Recorder) -> Callable[..., RecordingTask]:
    """Build RecordingTasks that share one recorder."""
    return partial(RecordingTask, recorder=recorder)


class LazyTask(RecordingTask):
    """RecordingTask whose get_dependencies() yields to the loop first."""

    def __init__(
        self,
        name: str,
        dependencies: list[Task] | None = None,
        yields: int = 1,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, dependencies, **kwargs)
        self.yields = yields

    async def get_dependencies(self) -> list[Task]:
        for _ in range(self.yields):
            await asyncio.sleep(0)
        return self.dependencies


@pytest.fixture
def make_lazy_task(recorder: Recorder) -> Callable[..., LazyTask]:
    return partial(LazyTask, recorder=recorder)
