"""Tests for base-key supersession in TaskGraph."""

import asyncio

import pytest

from sprig.core.dag import TaskGraph, TaskStatus
from sprig.core.errors import DependencyCycleError


class TestSupersession:
    """A new key for a live base key replaces the old node."""

    @pytest.mark.asyncio
    async def test_supersede_before_processing(self, make_task, recorder):
        old = make_task("shared", id="1")
        dependant = make_task("dependant", dependencies=[old])
        graph = TaskGraph()
        await graph.add_task(dependant)

        await graph.add_task(make_task("shared", id="2"))
        results = await graph.process_tasks()

        assert graph.get_node("shared.1").status is TaskStatus.SUPERSEDED
        assert graph.get_node("shared.1").superseded_by == "shared.2"
        assert "shared.1" not in recorder.calls
        assert results["shared"].key == "shared.2"
        assert results["shared"].output["result"] == "result-shared.2"
        assert results["dependant"].dependency_results["shared"].key == "shared.2"

    @pytest.mark.asyncio
    async def test_supersede_while_processing(self, make_task, recorder):
        parent_started = asyncio.Event()
        inheritor_added = asyncio.Event()

        async def hold(task):
            parent_started.set()
            await inheritor_added.wait()

        dependency_a = make_task("dependencyA")
        dependency_b = make_task("dependencyB")
        parent = make_task("sharedName", dependencies=[dependency_a], id="1", callback=hold)
        inheritor = make_task("sharedName", dependencies=[dependency_b], id="2")
        dependant_a = make_task("dependantA", dependencies=[parent])
        dependant_b = make_task("dependantB", dependencies=[parent])

        graph = TaskGraph()
        await graph.add_task(dependant_a)
        await graph.add_task(dependant_b)
        processing = asyncio.ensure_future(graph.process_tasks())

        await asyncio.wait_for(parent_started.wait(), timeout=2)
        await graph.add_task(inheritor)
        inheritor_added.set()
        results = await asyncio.wait_for(processing, timeout=2)

        assert set(results) == {
            "dependencyA",
            "dependencyB",
            "sharedName",
            "dependantA",
            "dependantB",
        }
        assert results["sharedName"].output["result"] == "result-sharedName.2"
        assert set(results["sharedName"].dependency_results) == {"dependencyB"}

        # The old attempt ran to completion but its output was dropped
        assert recorder.calls["sharedName.1"] == 1
        assert graph.get_node("sharedName.1").status is TaskStatus.SUPERSEDED
        assert graph.get_node("sharedName.1").output is None

        for name in ("dependantA", "dependantB"):
            shared = results[name].dependency_results["sharedName"]
            assert shared.key == "sharedName.2"
            assert recorder.index("complete", "sharedName.2") < recorder.index("start", name)
            assert recorder.calls[name] == 1

    @pytest.mark.asyncio
    async def test_readding_superseded_key_waits_on_survivor(self, make_task, recorder):
        old = make_task("shared", id="1")
        graph = TaskGraph()
        await graph.add_task(old)
        await graph.add_task(make_task("shared", id="2"))

        await graph.add_task(old)
        await graph.add_task(make_task("late", dependencies=[old]))
        results = await graph.process_tasks()

        assert graph.get_node("late").dependency_keys == ["shared.2"]
        assert results["late"].dependency_results["shared"].key == "shared.2"
        assert "shared.1" not in recorder.calls

    @pytest.mark.asyncio
    async def test_new_key_after_old_settled(self, make_task, recorder):
        graph = TaskGraph()
        old = make_task("shared", id="1")
        await graph.add_task(make_task("consumer", dependencies=[old]))
        await graph.process_tasks()

        await graph.add_task(make_task("shared", id="2"))
        results = await graph.process_tasks()

        # Settled nodes are never superseded; they just stop being reported
        assert graph.get_node("shared.1").status is TaskStatus.SUCCEEDED
        assert results["shared"].key == "shared.2"
        assert results["consumer"].dependency_results["shared"].key == "shared.1"
        assert recorder.calls == {"shared.1": 1, "consumer": 1, "shared.2": 1}

    @pytest.mark.asyncio
    async def test_supersession_chain(self, make_task, recorder):
        graph = TaskGraph()
        dependant = make_task("dependant", dependencies=[make_task("shared", id="1")])
        await graph.add_task(dependant)
        await graph.add_task(make_task("shared", id="2"))
        await graph.add_task(make_task("shared", id="3"))

        results = await graph.process_tasks()

        assert graph.get_node("shared.2").superseded_by == "shared.3"
        assert results["dependant"].dependency_results["shared"].key == "shared.3"
        assert set(recorder.calls) == {"shared.3", "dependant"}

    @pytest.mark.asyncio
    async def test_rejects_cycle_created_by_rewiring(self, make_task):
        old = make_task("shared", id="1")
        dependant = make_task("dependant", dependencies=[old])
        graph = TaskGraph()
        await graph.add_task(dependant)

        # shared.2 -> dependant, and dependant would be rewired onto shared.2
        with pytest.raises(DependencyCycleError):
            await graph.add_task(make_task("shared", dependencies=[dependant], id="2"))

        assert graph.get_node("shared.2") is None
        assert graph.get_node("shared.1").status is TaskStatus.PENDING
        assert graph.get_node("dependant").dependency_keys == ["shared.1"]
