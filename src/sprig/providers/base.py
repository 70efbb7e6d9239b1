"""Provider interface and the result types providers return.

A provider is the execution environment behind the task layer: it knows
how to build a module, deploy a service and run tests or ad-hoc commands.
Tasks only see this interface, never a provider's internals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from sprig.core.errors import ParameterError

if TYPE_CHECKING:
    from sprig.core.config import ProjectConfig
    from sprig.core.modules import Module, Service, TestSpec


@dataclass
class EnvironmentStatus:
    configured: bool
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BuildStatus:
    ready: bool
    version: str | None = None


@dataclass
class BuildResult:
    """Outcome of building one module version.

    ``fresh`` is False when nothing was built (already up to date, or the
    module has no build command).
    """

    module: str
    version: str
    fresh: bool
    log: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ServiceStatus:
    name: str
    state: str = "missing"  # missing | ready | failed
    version: str | None = None
    updated_at: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.state == "ready"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RunResult:
    command: str
    exit_code: int | None
    output: str = ""
    success: bool = False
    duration_s: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TestResult(RunResult):
    __test__ = False  # keep pytest from collecting this class

    module: str = ""
    test_name: str = ""
    version: str = ""


@dataclass
class RuntimeContext:
    """Environment handed to commands that run against deployed services."""

    env: dict[str, str] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)


class Provider(ABC):
    """An execution environment for modules and services."""

    name: str = "provider"

    def __init__(self, config: ProjectConfig) -> None:
        self.config = config

    @abstractmethod
    async def configure_environment(self) -> EnvironmentStatus:
        """Prepare the environment so later calls can succeed."""

    @abstractmethod
    async def get_environment_status(self) -> EnvironmentStatus: ...

    @abstractmethod
    async def get_build_status(self, module: Module) -> BuildStatus: ...

    @abstractmethod
    async def build_module(self, module: Module) -> BuildResult:
        """Build the module's current version.

        Raises:
            CommandError: If the build command fails.
        """

    @abstractmethod
    async def clear_builds(self) -> None: ...

    @abstractmethod
    async def deploy_service(self, service: Service, runtime_context: RuntimeContext) -> ServiceStatus:
        """Deploy the service at its module's current version.

        Raises:
            CommandError: If the deploy command fails.
        """

    @abstractmethod
    async def get_service_status(self, service: Service) -> ServiceStatus: ...

    @abstractmethod
    async def test_module(
        self,
        module: Module,
        test_spec: TestSpec,
        runtime_context: RuntimeContext,
    ) -> TestResult: ...

    @abstractmethod
    async def get_test_result(self, module: Module, test_spec: TestSpec) -> TestResult | None:
        """Last passing result of this test at the module's current version, if any."""

    @abstractmethod
    async def run_module(
        self,
        module: Module,
        command: str,
        runtime_context: RuntimeContext,
        timeout: float | None = None,
    ) -> RunResult: ...

    async def run_service(self, service: Service, runtime_context: RuntimeContext) -> RunResult:
        """Run an ad-hoc instance of a service using its command."""
        if not service.command:
            raise ParameterError(f"Service '{service.name}' has no command to run")
        env = RuntimeContext(
            env={**runtime_context.env, **service.env},
            dependencies=runtime_context.dependencies,
        )
        return await self.run_module(service.module, service.command, env)
