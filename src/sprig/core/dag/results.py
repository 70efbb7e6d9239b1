"""Result tree assembly.

Pure functions over settled nodes. Nothing here mutates graph state, so the
same node set always produces the same tree.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from sprig.core.dag.node import TaskNode
from sprig.core.types import TaskResult, TaskResults


def resolve(nodes: Mapping[str, TaskNode], key: str) -> TaskNode:
    """Follow supersession links from ``key`` to the node that replaced it."""
    node = nodes[key]
    while node.superseded_by is not None:
        node = nodes[node.superseded_by]
    return node


def assemble_results(nodes: Mapping[str, TaskNode], surviving: Mapping[str, str]) -> TaskResults:
    """Build the result tree for every settled surviving node.

    Args:
        nodes: All nodes, by key.
        surviving: Key of the surviving node for each base key.

    Returns:
        Mapping of base key to nested TaskResult. Nodes that haven't settled
        yet are left out.
    """
    memo: dict[str, TaskResult] = {}
    results: TaskResults = {}
    for base_key, key in surviving.items():
        node = nodes[key]
        if node.is_settled:
            results[base_key] = _build(nodes, node, memo)
    return results


def build_result(nodes: Mapping[str, TaskNode], node: TaskNode) -> TaskResult:
    """Result for a single settled node, with its dependencies nested."""
    return _build(nodes, node, {})


def assemble_dependency_results(nodes: Mapping[str, TaskNode], node: TaskNode) -> TaskResults:
    """Results of ``node``'s settled dependencies, keyed by base key."""
    return _dependency_results(nodes, node, {})


def _dependency_results(
    nodes: Mapping[str, TaskNode],
    node: TaskNode,
    memo: dict[str, TaskResult],
) -> TaskResults:
    results: TaskResults = {}
    for dep_key in node.dependency_keys:
        dep = resolve(nodes, dep_key)
        if dep.is_settled:
            results[dep.base_key] = _build(nodes, dep, memo)
    return results


def _build(nodes: Mapping[str, TaskNode], node: TaskNode, memo: dict[str, TaskResult]) -> TaskResult:
    if node.key in memo:
        return memo[node.key]

    result = TaskResult(
        type=node.type,
        description=node.description,
        output=node.output if node.error is None else None,
        dependency_results=_dependency_results(nodes, node, memo),
        error=node.error,
        key=node.key,
        status=node.status,
        duration_ms=node.duration_s * 1000,
    )
    memo[node.key] = result
    return result


def iter_errors(results: TaskResults) -> Iterator[tuple[str, TaskResult]]:
    """Yield ``(base_key, result)`` for every top-level entry with an error."""
    for base_key, result in results.items():
        if result.error is not None:
            yield base_key, result


def count_errors(results: TaskResults) -> int:
    return sum(1 for _ in iter_errors(results))
