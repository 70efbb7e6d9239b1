"""Task graph: registration, supersession and concurrent execution."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Any

from sprig.core.dag.node import TaskNode
from sprig.core.dag.results import (
    assemble_dependency_results,
    assemble_results,
    build_result,
    resolve,
)
from sprig.core.dag.task import Task
from sprig.core.errors import (
    DependencyCycleError,
    DependencyFailedError,
    TaskContractError,
    TaskGraphError,
)
from sprig.core.logging_config import get_logger, log_complete, log_error, log_start, log_warning
from sprig.core.types import TaskResult, TaskResults, TaskStatus

logger = get_logger(__name__)


@dataclass
class _Entry:
    """A task from an add_task() closure that needs a new node."""

    task: Task
    key: str
    base_key: str
    dependency_keys: tuple[str, ...]


class TaskGraph:
    """Graph of tasks, deduplicated by key and superseded by base key.

    All mutation happens on the event loop. ``add_task`` calls are serialized
    by a lock: each one resolves its closure and registers it in one step
    before the next starts. The scheduler changes node state only between
    awaits. ``process()`` calls run concurrently as asyncio tasks.

    Example:
        >>> graph = TaskGraph()
        >>> await graph.add_task(deploy_web)   # registers build tasks too
        >>> await graph.add_task(deploy_web)   # no-op, same key
        >>> results = await graph.process_tasks()
        >>> results["deploy.web"].output
    """

    def __init__(
        self,
        max_concurrency: int | None = None,
        on_task_start: Callable[[str], None] | None = None,
        on_task_complete: Callable[[TaskResult], None] | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._nodes: dict[str, TaskNode] = {}
        # Newest node per base key; the only node reported in results
        self._surviving: dict[str, str] = {}
        self._pending: set[str] = set()
        self._in_flight: dict[asyncio.Future[Any], TaskNode] = {}
        self._wakeup = asyncio.Event()
        self._add_lock = asyncio.Lock()
        self._drain: asyncio.Future[None] | None = None
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
        self._on_task_start = on_task_start
        self._on_task_complete = on_task_complete

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def add_task(self, task: Task) -> None:
        """Register a task and every dependency not already known.

        Re-adding a known key is a no-op. A new key whose base key matches a
        live node supersedes that node: its dependents wait on the new node
        instead, and the old node's output is discarded.

        Raises:
            TaskContractError: A task has a malformed identity, or reuses a
                known key with different dependencies.
            DependencyCycleError: Registering the closure would form a cycle.
        """
        async with self._add_lock:
            entries = await self._resolve_closure(task)
            if not entries:
                return

            self._check_acyclic(entries)

            for entry in entries:
                self._register(entry)

        # Let a running drain pick the new nodes up
        self._wakeup.set()

    async def _resolve_closure(self, root: Task) -> list[_Entry]:
        """Walk ``root`` and its dependencies depth-first, dependencies first."""
        entries: list[_Entry] = []
        seen: dict[str, tuple[str, ...]] = {}

        async def visit(task: Task, path: list[str]) -> str:
            key, base_key = _identity(task)

            if key in path:
                raise DependencyCycleError(path[path.index(key) :] + [key])

            dependencies = await task.get_dependencies()
            known = self._nodes.get(key)

            if key in seen or known is not None:
                expected = seen[key] if key in seen else known.declared_dependency_keys  # type: ignore[union-attr]
                actual = tuple(_identity(dep)[0] for dep in dependencies)
                if set(actual) != set(expected):
                    raise TaskContractError(
                        f"Task '{key}' was added with different dependencies",
                        detail={"key": key, "expected": list(expected), "actual": list(actual)},
                    )
                return key

            dependency_keys: list[str] = []
            for dependency in dependencies:
                dep_key = await visit(dependency, [*path, key])
                if dep_key not in dependency_keys:
                    dependency_keys.append(dep_key)

            seen[key] = tuple(dependency_keys)
            entries.append(_Entry(task, key, base_key, tuple(dependency_keys)))
            return key

        await visit(root, [])
        return entries

    def _check_acyclic(self, entries: list[_Entry]) -> None:
        """Reject closures that would form a cycle once supersession rewires dependents.

        A superseding task may itself depend (transitively) on a dependent of
        the node it replaces. That only shows up after rewiring, so the check
        runs on a copy of the live graph with the new entries applied.
        """
        edges: dict[str, set[str]] = {
            key: set(node.dependency_keys) for key, node in self._nodes.items() if node.is_live
        }
        live_by_base = {
            base_key: key for base_key, key in self._surviving.items() if self._nodes[key].is_live
        }
        redirects: dict[str, str] = {}

        def target(key: str) -> str:
            if key in self._nodes:
                key = resolve(self._nodes, key).key
            while key in redirects:
                key = redirects[key]
            return key

        for entry in entries:
            edges[entry.key] = {target(dep_key) for dep_key in entry.dependency_keys}

            old_key = live_by_base.get(entry.base_key)
            if old_key is not None and old_key != entry.key:
                redirects[old_key] = entry.key
                for deps in edges.values():
                    if old_key in deps:
                        deps.discard(old_key)
                        deps.add(entry.key)
                edges.pop(old_key, None)
            live_by_base[entry.base_key] = entry.key

        try:
            TopologicalSorter(edges).prepare()
        except CycleError as e:
            cycle = list(reversed(e.args[1]))
            raise DependencyCycleError(cycle) from None

    def _register(self, entry: _Entry) -> None:
        if entry.key in self._nodes:
            return

        node = TaskNode(
            task=entry.task,
            key=entry.key,
            base_key=entry.base_key,
            declared_dependency_keys=entry.dependency_keys,
        )
        self._nodes[node.key] = node

        old_key = self._surviving.get(node.base_key)
        if old_key is not None and self._nodes[old_key].is_live:
            self._supersede(self._nodes[old_key], node)
        self._surviving[node.base_key] = node.key

        for dep_key in entry.dependency_keys:
            dependency = resolve(self._nodes, dep_key)
            node.add_dependency(dependency.key)
            dependency.dependents.add(node.key)

        self._pending.add(node.key)
        log_start(
            logger,
            node.key,
            "task_added",
            type=node.type,
            deps=node.dependency_keys,
        )

    def _supersede(self, old: TaskNode, new: TaskNode) -> None:
        was_processing = old.status is TaskStatus.PROCESSING
        old.mark_superseded(new.key)
        self._pending.discard(old.key)

        for dependent_key in old.dependents:
            self._nodes[dependent_key].replace_dependency(old.key, new.key)
            new.dependents.add(dependent_key)
        old.dependents.clear()

        log_warning(
            logger,
            old.key,
            "task_superseded",
            by=new.key,
            in_flight=was_processing,
            dependents=sorted(new.dependents),
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def process_tasks(self) -> TaskResults:
        """Process every registered task and return the result tree.

        Runs until no node is pending or in flight, picking up tasks added
        while it runs. Concurrent callers share the same pass. Task failures
        are recorded in the results; this only raises for contract errors.

        Returns:
            Mapping of base key to TaskResult for every surviving node.

        Raises:
            TaskGraphError: When called from inside a task's process().
        """
        current = asyncio.current_task()
        if current is not None and current in self._in_flight:
            raise TaskGraphError("process_tasks() can't be awaited from inside a task")

        if self._drain is None or self._drain.done():
            self._drain = asyncio.ensure_future(self._run())
        await asyncio.shield(self._drain)
        return self.results()

    async def _run(self) -> None:
        start = time.monotonic()
        log_start(logger, "graph", "graph_start", pending=len(self._pending))

        while True:
            self._dispatch()
            if not self._in_flight:
                break

            self._wakeup.clear()
            wakeup = asyncio.ensure_future(self._wakeup.wait())
            try:
                done, _ = await asyncio.wait(
                    {*self._in_flight, wakeup},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                wakeup.cancel()

            for future in done:
                if future is wakeup:
                    continue
                self._settle(self._in_flight.pop(future), future)

        if self._pending:
            stuck = sorted(self._pending)
            raise TaskGraphError(f"Tasks can never become ready: {stuck}", detail={"keys": stuck})

        log_complete(
            logger,
            "graph",
            "graph_complete",
            time.monotonic() - start,
            nodes=len(self._nodes),
        )

    def _dispatch(self) -> None:
        """Fail nodes with a failed dependency and start nodes that are ready.

        Repeats until nothing changes, so failures cascade to transitive
        dependents within one call.
        """
        changed = True
        while changed:
            changed = False
            for key in sorted(self._pending):
                node = self._nodes[key]
                dependencies = [self._nodes[dep_key] for dep_key in node.dependency_keys]

                failed = next((d for d in dependencies if d.status is TaskStatus.FAILED), None)
                if failed is not None:
                    self._pending.discard(key)
                    assert failed.error is not None
                    node.mark_failed(DependencyFailedError(node.key, failed.key, failed.error))
                    log_error(logger, node.key, "task_skipped", node.error, dependency=failed.key)
                    self._notify_complete(node)
                    changed = True
                elif all(d.status is TaskStatus.SUCCEEDED for d in dependencies):
                    self._pending.discard(key)
                    node.mark_ready()
                    self._start(node)

    def _start(self, node: TaskNode) -> None:
        node.mark_processing()
        dependency_results = assemble_dependency_results(self._nodes, node)
        future = asyncio.ensure_future(self._process(node, dependency_results))
        self._in_flight[future] = node

        log_start(logger, node.key, "task_start", type=node.type, deps=list(dependency_results))
        if self._on_task_start:
            try:
                self._on_task_start(node.key)
            except Exception:
                logger.exception("[%s] on_task_start callback failed", node.key)

    async def _process(self, node: TaskNode, dependency_results: TaskResults) -> Any:
        if self._semaphore is None:
            return await node.task.process(dependency_results)
        async with self._semaphore:
            node.started_at = time.monotonic()
            return await node.task.process(dependency_results)

    def _settle(self, node: TaskNode, future: asyncio.Future[Any]) -> None:
        error: BaseException | None
        if future.cancelled():
            error = asyncio.CancelledError(f"Task '{node.key}' was cancelled")
        else:
            error = future.exception()

        if node.status is TaskStatus.SUPERSEDED:
            log_warning(logger, node.key, "task_discarded", superseded_by=node.superseded_by)
            return

        if error is not None:
            node.mark_failed(error)
            log_error(logger, node.key, "task_failed", error, duration_s=node.duration_s)
        else:
            node.mark_succeeded(future.result())
            log_complete(logger, node.key, "task_complete", node.duration_s, type=node.type)
        self._notify_complete(node)

    def _notify_complete(self, node: TaskNode) -> None:
        if self._on_task_complete:
            try:
                self._on_task_complete(build_result(self._nodes, node))
            except Exception:
                logger.exception("[%s] on_task_complete callback failed", node.key)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def results(self) -> TaskResults:
        """Result tree for every settled surviving node."""
        return assemble_results(self._nodes, self._surviving)

    def get_node(self, key: str) -> TaskNode | None:
        return self._nodes.get(key)

    def list_nodes(self) -> list[TaskNode]:
        return list(self._nodes.values())

    @property
    def is_idle(self) -> bool:
        return not self._pending and not self._in_flight

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"TaskGraph(nodes={len(self._nodes)}, pending={len(self._pending)}, in_flight={len(self._in_flight)})"


def _identity(task: Task) -> tuple[str, str]:
    if not isinstance(task, Task):
        raise TaskContractError(f"Expected a Task, got {type(task).__name__}")

    key = task.get_key()
    base_key = task.get_base_key()
    for label, value in (("key", key), ("base key", base_key)):
        if not isinstance(value, str) or not value:
            raise TaskContractError(
                f"Task {task!r} has an invalid {label}: {value!r}",
                detail={"type": task.type, label: value},
            )
    return key, base_key
