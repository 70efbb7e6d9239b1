"""Orchestration context shared by commands and tasks.

One context per command invocation. It owns the task graph and the
provider, and is the only thing tasks talk to.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from sprig.core.config import ProjectConfig, load_project_config
from sprig.core.dag import Task, TaskGraph, TaskResults, count_errors
from sprig.core.errors import ParameterError
from sprig.core.logging_config import get_logger
from sprig.core.modules import Module, Service, TestSpec
from sprig.core.validation import env_name
from sprig.providers import (
    BuildResult,
    BuildStatus,
    EnvironmentStatus,
    Provider,
    RunResult,
    RuntimeContext,
    ServiceStatus,
    TestResult,
    get_provider,
)

logger = get_logger(__name__)


class OrchestrationContext:
    """Project config, provider and task graph for one command.

    Example:
        >>> ctx = await OrchestrationContext.factory("/path/to/project")
        >>> for module in ctx.get_modules().values():
        ...     await ctx.add_task(BuildTask(ctx, module))
        >>> results = await ctx.process_tasks()
    """

    def __init__(
        self,
        config: ProjectConfig,
        provider: Provider | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.config = config
        self.provider = provider or get_provider(config)
        self.task_graph = TaskGraph(max_concurrency=max_concurrency)

    @classmethod
    async def factory(
        cls,
        root: Path | str,
        provider: str | None = None,
        environment: str | None = None,
        max_concurrency: int | None = None,
    ) -> OrchestrationContext:
        """Load the project at ``root`` and build a context for it."""
        config = await asyncio.to_thread(load_project_config, root, provider, environment)
        return cls(config, max_concurrency=max_concurrency)

    @property
    def project_name(self) -> str:
        return self.config.name

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_modules(self, names: Iterable[str] | None = None) -> dict[str, Module]:
        """Modules by name, all of them when ``names`` is empty.

        Raises:
            ParameterError: If any name isn't a module in the project.
        """
        return _pick(self.config.modules, names, "module")

    def get_module(self, name: str) -> Module:
        return self.get_modules([name])[name]

    def get_services(self, names: Iterable[str] | None = None) -> dict[str, Service]:
        return _pick(self.config.services, names, "service")

    def get_service(self, name: str) -> Service:
        return self.get_services([name])[name]

    def get_test(self, module_name: str, test_name: str) -> TestSpec:
        module = self.get_module(module_name)
        test_spec = module.tests.get(test_name)
        if test_spec is None:
            raise ParameterError(
                f'Could not find test "{test_name}" in module {module_name}',
                detail={
                    "module": module_name,
                    "test": test_name,
                    "available": sorted(module.tests),
                },
            )
        return test_spec

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def add_task(self, task: Task) -> None:
        """Register a task and its dependency closure with the graph."""
        await self.task_graph.add_task(task)

    async def process_tasks(self) -> TaskResults:
        """Process every added task. Failures are returned, not raised."""
        results = await self.task_graph.process_tasks()
        errors = count_errors(results)
        if errors:
            logger.warning("%d of %d tasks failed", errors, len(results))
        return results

    # ------------------------------------------------------------------
    # Provider passthroughs
    # ------------------------------------------------------------------

    async def configure_environment(self) -> EnvironmentStatus:
        return await self.provider.configure_environment()

    async def get_status(self) -> dict[str, Any]:
        """Environment, build and service status for the whole project."""
        environment = await self.provider.get_environment_status()
        modules = list(self.config.modules.values())
        services = list(self.config.services.values())

        builds = await asyncio.gather(*(self.provider.get_build_status(m) for m in modules))
        statuses = await asyncio.gather(*(self.provider.get_service_status(s) for s in services))

        return {
            "project": self.config.name,
            "provider": self.provider.name,
            "environment": self.config.environment,
            "configured": environment.configured,
            "modules": {
                m.name: {"version": m.version, "built": b.ready} for m, b in zip(modules, builds)
            },
            "services": {s.name: st.to_dict() for s, st in zip(services, statuses)},
        }

    async def clear_builds(self) -> None:
        await self.provider.clear_builds()

    async def get_build_status(self, module: Module) -> BuildStatus:
        return await self.provider.get_build_status(module)

    async def build_module(self, module: Module) -> BuildResult:
        return await self.provider.build_module(module)

    async def get_service_status(self, service: Service) -> ServiceStatus:
        return await self.provider.get_service_status(service)

    async def deploy_service(self, service: Service, runtime_context: RuntimeContext) -> ServiceStatus:
        return await self.provider.deploy_service(service, runtime_context)

    async def test_module(
        self,
        module: Module,
        test_spec: TestSpec,
        runtime_context: RuntimeContext,
    ) -> TestResult:
        return await self.provider.test_module(module, test_spec, runtime_context)

    async def get_test_result(self, module: Module, test_spec: TestSpec) -> TestResult | None:
        return await self.provider.get_test_result(module, test_spec)

    async def run_module(
        self,
        module: Module,
        command: str,
        runtime_context: RuntimeContext,
        timeout: float | None = None,
    ) -> RunResult:
        return await self.provider.run_module(module, command, runtime_context, timeout)

    async def run_service(self, service: Service, runtime_context: RuntimeContext) -> RunResult:
        return await self.provider.run_service(service, runtime_context)

    def prepare_runtime_context(
        self,
        module: Module,
        dependencies: Iterable[Service] = (),
        dependency_results: TaskResults | None = None,
    ) -> RuntimeContext:
        """Environment for commands that run against deployed services.

        Each dependency contributes ``SPRIG_SERVICE_<NAME>_VERSION``. When
        deploy results are given, the deployed version is taken from them.
        """
        env: dict[str, str] = {"SPRIG_MODULE_VERSION": module.version}
        names: list[str] = []
        for service in dependencies:
            version = service.module.version
            result = (dependency_results or {}).get(f"deploy.{service.name}")
            if result is not None and isinstance(result.output, ServiceStatus) and result.output.version:
                version = result.output.version
            env[f"SPRIG_SERVICE_{env_name(service.name)}_VERSION"] = version
            names.append(service.name)
        return RuntimeContext(env=env, dependencies=names)

    def __repr__(self) -> str:
        return f"OrchestrationContext(project={self.config.name!r}, provider={self.provider.name!r})"


def _pick(available: dict[str, Any], names: Iterable[str] | None, entity: str) -> dict[str, Any]:
    names = list(names or [])
    if not names:
        return dict(available)

    missing = [n for n in names if n not in available]
    if missing:
        raise ParameterError(
            f"Unknown {entity}(s): {', '.join(missing)}",
            detail={"missing": missing, "available": sorted(available)},
        )
    return {n: available[n] for n in names}

