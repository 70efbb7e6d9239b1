"""Deploy task: deploy one service at its module's current version."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sprig.core.dag import Task, TaskResults
from sprig.core.logging_config import get_logger
from sprig.providers import ServiceStatus
from sprig.tasks.build import BuildTask

if TYPE_CHECKING:
    from sprig.core.context import OrchestrationContext
    from sprig.core.modules import Service

logger = get_logger(__name__)


class DeployTask(Task):
    """Deploy a service once its module is built and its dependencies are up.

    Services the deploy depends on are deployed too (never forced), so
    ``sprig deploy web`` brings up ``db`` first when ``web`` needs it.
    """

    type = "deploy"

    def __init__(
        self,
        ctx: OrchestrationContext,
        service: Service,
        force: bool = False,
        force_build: bool = False,
    ) -> None:
        super().__init__(service.name)
        self.ctx = ctx
        self.service = service
        self.force = force
        self.force_build = force_build

    def get_base_key(self) -> str:
        return f"deploy.{self.service.name}"

    def get_key(self) -> str:
        return f"{self.get_base_key()}.{self.service.module.version}"

    def get_description(self) -> str:
        return f"deploying service {self.service.name} (from module {self.service.module.name})"

    async def get_dependencies(self) -> list[Task]:
        dependencies: list[Task] = [BuildTask(self.ctx, self.service.module, force=self.force_build)]
        for service in self.ctx.get_services(self.service.dependencies).values():
            dependencies.append(DeployTask(self.ctx, service, force=False, force_build=self.force_build))
        return dependencies

    async def process(self, dependency_results: TaskResults) -> ServiceStatus:
        version = self.service.module.version

        if not self.force:
            status = await self.ctx.get_service_status(self.service)
            if status.is_ready and status.version == version:
                logger.info("Service %s is already running %s", self.service.name, version)
                return status

        runtime_context = self.ctx.prepare_runtime_context(
            self.service.module,
            self.ctx.get_services(self.service.dependencies).values(),
            dependency_results,
        )
        logger.info("Deploying %s %s", self.service.name, version)
        return await self.ctx.deploy_service(self.service, runtime_context)
