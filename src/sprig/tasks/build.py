"""Build task: build one module version."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sprig.core.dag import Task, TaskResults
from sprig.core.logging_config import get_logger
from sprig.providers import BuildResult

if TYPE_CHECKING:
    from sprig.core.context import OrchestrationContext
    from sprig.core.modules import Module

logger = get_logger(__name__)


class BuildTask(Task):
    """Build a module after the modules it declares as build dependencies.

    The key includes the module version, so a build added after the module
    changed on disk supersedes the stale one.
    """

    type = "build"

    def __init__(self, ctx: OrchestrationContext, module: Module, force: bool = False) -> None:
        super().__init__(module.name)
        self.ctx = ctx
        self.module = module
        self.force = force

    def get_base_key(self) -> str:
        return f"build.{self.module.name}"

    def get_key(self) -> str:
        return f"{self.get_base_key()}.{self.module.version}"

    def get_description(self) -> str:
        return f"building {self.module.name}"

    async def get_dependencies(self) -> list[Task]:
        modules = self.ctx.get_modules(self.module.build_dependencies)
        return [BuildTask(self.ctx, m, force=self.force) for m in modules.values()]

    async def process(self, dependency_results: TaskResults) -> BuildResult:
        if not self.force:
            status = await self.ctx.get_build_status(self.module)
            if status.ready:
                logger.info("Module %s %s is already built", self.module.name, self.module.version)
                return BuildResult(module=self.module.name, version=self.module.version, fresh=False)

        logger.info("Building %s %s", self.module.name, self.module.version)
        return await self.ctx.build_module(self.module)
