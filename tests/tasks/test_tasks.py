"""Tests for the build, deploy and test task variants."""

import pytest

from sprig.core.context import OrchestrationContext
from sprig.core.dag import TaskStatus
from sprig.core.errors import DependencyFailedError, TestFailedError
from sprig.providers import BuildResult, ServiceStatus, TestResult
from sprig.tasks import BuildTask, DeployTask, TestTask


async def dependency_keys(task):
    return [dep.get_key() for dep in await task.get_dependencies()]


class TestBuildTask:
    """Tests for BuildTask."""

    @pytest.mark.asyncio
    async def test_identity(self, ctx):
        api = ctx.get_module("api")
        task = BuildTask(ctx, api)

        assert task.type == "build"
        assert task.get_base_key() == "build.api"
        assert task.get_key() == f"build.api.{api.version}"
        assert task.get_description() == "building api"
        assert await dependency_keys(task) == [f"build.common.{ctx.get_module('common').version}"]

    @pytest.mark.asyncio
    async def test_builds_then_skips(self, config):
        ctx = OrchestrationContext(config)
        await ctx.add_task(BuildTask(ctx, ctx.get_module("api")))
        first = await ctx.process_tasks()

        again = OrchestrationContext(config)
        await again.add_task(BuildTask(again, again.get_module("api")))
        second = await again.process_tasks()

        assert first["build.api"].output.fresh
        assert first["build.common"].output.fresh
        assert second["build.api"].output == BuildResult(
            module="api", version=config.modules["api"].version, fresh=False
        )

    @pytest.mark.asyncio
    async def test_force_rebuilds(self, config):
        ctx = OrchestrationContext(config)
        await ctx.add_task(BuildTask(ctx, ctx.get_module("common")))
        await ctx.process_tasks()

        again = OrchestrationContext(config)
        await again.add_task(BuildTask(again, again.get_module("common"), force=True))
        results = await again.process_tasks()

        assert results["build.common"].output.fresh

    @pytest.mark.asyncio
    async def test_failed_dependency_skips_build(self, ctx):
        ctx.get_module("common").build_command = "echo broken; exit 1"
        await ctx.add_task(BuildTask(ctx, ctx.get_module("api")))

        results = await ctx.process_tasks()

        error = results["build.api"].error
        assert isinstance(error, DependencyFailedError)
        assert error.dependency_key.startswith("build.common.")
        assert "broken" in error.root_error.output

    @pytest.mark.asyncio
    async def test_changed_module_supersedes_pending_build(self, ctx, project):
        api = ctx.get_module("api")
        await ctx.add_task(BuildTask(ctx, api))
        stale_key = f"build.api.{api.version}"

        (project / "api" / "main.txt").write_text("changed\n")
        api.refresh_version()
        await ctx.add_task(BuildTask(ctx, api))
        results = await ctx.process_tasks()

        assert ctx.task_graph.get_node(stale_key).status is TaskStatus.SUPERSEDED
        assert results["build.api"].key == f"build.api.{api.version}"
        assert results["build.api"].key != stale_key


class TestDeployTask:
    """Tests for DeployTask."""

    @pytest.mark.asyncio
    async def test_identity(self, ctx):
        service = ctx.get_service("api")
        task = DeployTask(ctx, service)
        db_version = ctx.get_module("db").version

        assert task.get_base_key() == "deploy.api"
        assert task.get_key() == f"deploy.api.{service.module.version}"
        assert task.get_description() == "deploying service api (from module api)"
        assert await dependency_keys(task) == [
            f"build.api.{service.module.version}",
            f"deploy.db.{db_version}",
        ]

    @pytest.mark.asyncio
    async def test_deploys_dependencies_first(self, ctx):
        await ctx.configure_environment()
        await ctx.add_task(DeployTask(ctx, ctx.get_service("api")))

        results = await ctx.process_tasks()

        assert set(results) == {"build.api", "build.common", "build.db", "deploy.db", "deploy.api"}
        deployed = results["deploy.api"].output
        assert isinstance(deployed, ServiceStatus)
        assert deployed.is_ready
        assert deployed.version == ctx.get_module("api").version
        assert set(results["deploy.api"].dependency_results) == {"build.api", "deploy.db"}

    @pytest.mark.asyncio
    async def test_skips_running_version(self, config):
        ctx = OrchestrationContext(config)
        await ctx.add_task(DeployTask(ctx, ctx.get_service("db")))
        first = (await ctx.process_tasks())["deploy.db"].output

        again = OrchestrationContext(config)
        await again.add_task(DeployTask(again, again.get_service("db")))
        second = (await again.process_tasks())["deploy.db"].output

        assert second == first

    @pytest.mark.asyncio
    async def test_force_redeploys(self, config):
        ctx = OrchestrationContext(config)
        await ctx.add_task(DeployTask(ctx, ctx.get_service("db")))
        await ctx.process_tasks()
        config.services["db"].deploy_command = "exit 4"

        again = OrchestrationContext(config)
        await again.add_task(DeployTask(again, again.get_service("db"), force=True))
        results = await again.process_tasks()

        assert results["deploy.db"].failed


class TestTestTask:
    """Tests for TestTask."""

    @pytest.mark.asyncio
    async def test_identity(self, ctx):
        api = ctx.get_module("api")
        task = TestTask(ctx, api, api.tests["integ"])

        assert task.get_name() == "api.integ"
        assert task.get_base_key() == "test.api.integ"
        assert task.get_key() == f"test.api.integ.{api.version}"
        assert task.get_description() == "running integ tests in module api"
        assert await dependency_keys(task) == [
            f"build.api.{api.version}",
            f"deploy.api.{api.version}",
        ]

    @pytest.mark.asyncio
    async def test_runs_against_deployed_services(self, ctx):
        api = ctx.get_module("api")
        await ctx.add_task(TestTask(ctx, api, api.tests["integ"]))

        results = await ctx.process_tasks()

        output = results["test.api.integ"].output
        assert isinstance(output, TestResult)
        assert output.success
        assert output.output == "integ ok\n"
        assert "deploy.db" in results

    @pytest.mark.asyncio
    async def test_failure_raises_with_output(self, ctx):
        api = ctx.get_module("api")
        api.tests["unit"].command = "echo assertion failed; exit 1"
        await ctx.add_task(TestTask(ctx, api, api.tests["unit"]))

        results = await ctx.process_tasks()

        error = results["test.api.unit"].error
        assert isinstance(error, TestFailedError)
        assert error.detail["output"] == "assertion failed\n"
        assert not results["build.api"].failed

    @pytest.mark.asyncio
    async def test_passed_test_is_not_rerun(self, config):
        ctx = OrchestrationContext(config)
        api = ctx.get_module("api")
        await ctx.add_task(TestTask(ctx, api, api.tests["unit"]))
        first = (await ctx.process_tasks())["test.api.unit"].output

        # A command that would now fail proves the saved result was reused
        api.tests["unit"].command = "exit 1"
        again = OrchestrationContext(config)
        await again.add_task(TestTask(again, api, api.tests["unit"]))
        second = (await again.process_tasks())["test.api.unit"]

        assert not second.failed
        assert second.output == first

    @pytest.mark.asyncio
    async def test_force_reruns(self, config):
        ctx = OrchestrationContext(config)
        api = ctx.get_module("api")
        await ctx.add_task(TestTask(ctx, api, api.tests["unit"]))
        await ctx.process_tasks()

        api.tests["unit"].command = "exit 1"
        again = OrchestrationContext(config)
        await again.add_task(TestTask(again, api, api.tests["unit"], force=True))
        results = await again.process_tasks()

        assert isinstance(results["test.api.unit"].error, TestFailedError)
