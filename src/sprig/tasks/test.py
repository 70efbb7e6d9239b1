"""Test task: run one module test against its deployed dependencies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sprig.core.dag import Task, TaskResults
from sprig.core.errors import TestFailedError
from sprig.core.logging_config import get_logger
from sprig.providers import TestResult
from sprig.tasks.build import BuildTask
from sprig.tasks.deploy import DeployTask

if TYPE_CHECKING:
    from sprig.core.context import OrchestrationContext
    from sprig.core.modules import Module, TestSpec

logger = get_logger(__name__)


class TestTask(Task):
    """Run a module test after building the module and deploying what it needs.

    A test that already passed at the current version is not re-run unless
    forced. A failing test raises TestFailedError, so it shows up as an
    error entry in the results.
    """

    __test__ = False  # keep pytest from collecting this class

    type = "test"

    def __init__(
        self,
        ctx: OrchestrationContext,
        module: Module,
        test_spec: TestSpec,
        force: bool = False,
        force_build: bool = False,
    ) -> None:
        super().__init__(f"{module.name}.{test_spec.name}")
        self.ctx = ctx
        self.module = module
        self.test_spec = test_spec
        self.force = force
        self.force_build = force_build

    def get_base_key(self) -> str:
        return f"test.{self.module.name}.{self.test_spec.name}"

    def get_key(self) -> str:
        return f"{self.get_base_key()}.{self.module.version}"

    def get_description(self) -> str:
        return f"running {self.test_spec.name} tests in module {self.module.name}"

    async def get_dependencies(self) -> list[Task]:
        dependencies: list[Task] = [BuildTask(self.ctx, self.module, force=self.force_build)]
        for service in self.ctx.get_services(self.test_spec.dependencies).values():
            dependencies.append(DeployTask(self.ctx, service, force=False, force_build=self.force_build))
        return dependencies

    async def process(self, dependency_results: TaskResults) -> TestResult:
        if not self.force:
            previous = await self.ctx.get_test_result(self.module, self.test_spec)
            if previous is not None and previous.success:
                logger.info("Test %s already passed for %s", self.name, self.module.version)
                return previous

        runtime_context = self.ctx.prepare_runtime_context(
            self.module,
            self.ctx.get_services(self.test_spec.dependencies).values(),
            dependency_results,
        )
        logger.info("Running test %s", self.name)
        result = await self.ctx.test_module(self.module, self.test_spec, runtime_context)

        if not result.success:
            raise TestFailedError(
                f"Test {self.name} failed with exit code {result.exit_code}",
                detail={"module": self.module.name, "test": self.test_spec.name, "output": result.output},
            )
        return result
