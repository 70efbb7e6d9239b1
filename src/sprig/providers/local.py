"""LocalProvider - runs module commands as local subprocesses.

Builds and deploys are shell commands from sprig.yml, run in the module's
directory. State lives under ``<project>/.sprig/``:

    .sprig/builds/<module>/<version>   marker written after a successful build
    .sprig/services.json               last deployed version per service
    .sprig/tests/<module>.<test>.<version>.json   last passing test run

Key features:
- Every command gets the project env file, the module version, and the
  runtime context of deployed dependencies
- Timeouts kill the process and surface as CommandError
- Output is captured (stdout and stderr interleaved) and returned
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from sprig.core.errors import CommandError, ProviderError
from sprig.core.logging_config import get_logger, log_complete, log_error, log_start
from sprig.core.modules import Module, Service, TestSpec
from sprig.providers.base import (
    BuildResult,
    BuildStatus,
    EnvironmentStatus,
    Provider,
    RunResult,
    RuntimeContext,
    ServiceStatus,
    TestResult,
)

if TYPE_CHECKING:
    from sprig.core.config import ProjectConfig

logger = get_logger(__name__)


@dataclass
class CommandOutput:
    """What a finished subprocess left behind."""

    command: str
    exit_code: int | None
    output: str
    duration_s: float
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


async def run_command(
    command: str,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> CommandOutput:
    """Run a shell command and capture its output.

    Never raises for a non-zero exit; callers decide what failure means.

    Args:
        command: Shell command line.
        cwd: Working directory.
        env: Variables added on top of the current environment.
        timeout: Seconds before the process is killed. None waits forever.
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    start = time.monotonic()
    log_start(logger, "exec", "command_start", command=command, cwd=cwd, timeout=timeout)

    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        cwd=str(cwd) if cwd else None,
        env=full_env,
    )

    try:
        stdout_bytes, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        duration = time.monotonic() - start
        log_error(logger, "exec", "command_timeout", f"timed out after {timeout}s", command=command)
        return CommandOutput(command, None, "", duration, timed_out=True)

    duration = time.monotonic() - start
    output = stdout_bytes.decode("utf-8", errors="replace")
    log_complete(logger, "exec", "command_complete", duration, exit_code=proc.returncode)
    return CommandOutput(command, proc.returncode, output, duration)


def _check(result: CommandOutput, what: str) -> None:
    if result.timed_out:
        raise CommandError(f"{what} timed out", command=result.command)
    if result.exit_code != 0:
        raise CommandError(
            f"{what} failed with exit code {result.exit_code}",
            command=result.command,
            exit_code=result.exit_code,
            output=result.output,
        )


class LocalProvider(Provider):
    """Provider that runs everything on the local machine."""

    name = "local"

    def __init__(self, config: ProjectConfig) -> None:
        super().__init__(config)
        self.state_dir: Path = config.state_dir
        self.builds_dir = self.state_dir / "builds"
        self.tests_dir = self.state_dir / "tests"
        self.services_file = self.state_dir / "services.json"
        self._state_lock = asyncio.Lock()

    def _base_env(self, module: Module, runtime_context: RuntimeContext | None = None) -> dict[str, str]:
        env = {
            **self.config.env,
            "SPRIG_PROJECT": self.config.name,
            "SPRIG_ENVIRONMENT": self.config.environment,
            "SPRIG_MODULE": module.name,
            "SPRIG_MODULE_VERSION": module.version,
        }
        if runtime_context:
            env.update(runtime_context.env)
        return env

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    async def configure_environment(self) -> EnvironmentStatus:
        await asyncio.to_thread(self.builds_dir.mkdir, parents=True, exist_ok=True)
        return await self.get_environment_status()

    async def get_environment_status(self) -> EnvironmentStatus:
        return EnvironmentStatus(
            configured=self.state_dir.is_dir(),
            detail={"provider": self.name, "state_dir": str(self.state_dir)},
        )

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def _build_marker(self, module: Module) -> Path:
        return self.builds_dir / module.name / module.version

    async def get_build_status(self, module: Module) -> BuildStatus:
        if not module.build_command:
            return BuildStatus(ready=True, version=module.version)
        ready = self._build_marker(module).exists()
        return BuildStatus(ready=ready, version=module.version if ready else None)

    async def build_module(self, module: Module) -> BuildResult:
        if not module.build_command:
            return BuildResult(module=module.name, version=module.version, fresh=False)

        result = await run_command(
            module.build_command,
            cwd=module.path,
            env=self._base_env(module),
            timeout=module.build_timeout,
        )
        _check(result, f"Build of module '{module.name}'")

        marker = self._build_marker(module)
        await asyncio.to_thread(marker.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(marker.write_text, result.output, "utf-8")
        return BuildResult(module=module.name, version=module.version, fresh=True, log=result.output)

    async def clear_builds(self) -> None:
        if self.builds_dir.exists():
            await asyncio.to_thread(shutil.rmtree, self.builds_dir)

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def _read_services(self) -> dict[str, dict[str, str]]:
        if not self.services_file.exists():
            return {}
        try:
            return json.loads(self.services_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Corrupt service state in {self.services_file}: {e}",
                detail={"path": str(self.services_file)},
            ) from e

    def _write_services(self, data: dict[str, dict[str, str]]) -> None:
        self.services_file.parent.mkdir(parents=True, exist_ok=True)
        self.services_file.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    async def _record_service(self, status: ServiceStatus) -> None:
        async with self._state_lock:
            data = await asyncio.to_thread(self._read_services)
            data[status.name] = {
                "state": status.state,
                "version": status.version or "",
                "updated_at": status.updated_at or "",
            }
            await asyncio.to_thread(self._write_services, data)

    async def deploy_service(self, service: Service, runtime_context: RuntimeContext) -> ServiceStatus:
        module = service.module
        now = datetime.now(timezone.utc).isoformat()

        if service.deploy_command:
            result = await run_command(
                service.deploy_command,
                cwd=module.path,
                env={**self._base_env(module, runtime_context), **service.env},
                timeout=module.build_timeout,
            )
            if not result.success:
                await self._record_service(ServiceStatus(service.name, "failed", module.version, now))
                _check(result, f"Deploy of service '{service.name}'")

        status = ServiceStatus(name=service.name, state="ready", version=module.version, updated_at=now)
        await self._record_service(status)
        return status

    async def get_service_status(self, service: Service) -> ServiceStatus:
        async with self._state_lock:
            data = await asyncio.to_thread(self._read_services)
        entry = data.get(service.name)
        if not entry:
            return ServiceStatus(name=service.name)
        return ServiceStatus(
            name=service.name,
            state=entry.get("state", "missing"),
            version=entry.get("version") or None,
            updated_at=entry.get("updated_at") or None,
        )

    # ------------------------------------------------------------------
    # Tests and ad-hoc commands
    # ------------------------------------------------------------------

    async def test_module(
        self,
        module: Module,
        test_spec: TestSpec,
        runtime_context: RuntimeContext,
    ) -> TestResult:
        result = await run_command(
            test_spec.command,
            cwd=module.path,
            env=self._base_env(module, runtime_context),
            timeout=test_spec.timeout,
        )
        test_result = TestResult(
            command=result.command,
            exit_code=result.exit_code,
            output=result.output,
            success=result.success,
            duration_s=result.duration_s,
            module=module.name,
            test_name=test_spec.name,
            version=module.version,
        )
        if test_result.success:
            path = self._test_result_file(module, test_spec)
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, json.dumps(test_result.to_dict()), "utf-8")
        return test_result

    def _test_result_file(self, module: Module, test_spec: TestSpec) -> Path:
        return self.tests_dir / f"{module.name}.{test_spec.name}.{module.version}.json"

    async def get_test_result(self, module: Module, test_spec: TestSpec) -> TestResult | None:
        path = self._test_result_file(module, test_spec)
        if not path.exists():
            return None
        data = json.loads(await asyncio.to_thread(path.read_text, "utf-8"))
        return TestResult(**data)

    async def run_module(
        self,
        module: Module,
        command: str,
        runtime_context: RuntimeContext,
        timeout: float | None = None,
    ) -> RunResult:
        result = await run_command(
            command,
            cwd=module.path,
            env=self._base_env(module, runtime_context),
            timeout=timeout,
        )
        return RunResult(
            command=result.command,
            exit_code=result.exit_code,
            output=result.output,
            success=result.success,
            duration_s=result.duration_s,
        )
