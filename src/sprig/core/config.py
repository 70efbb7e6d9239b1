"""Project configuration loading.

A project is a directory with a ``sprig.yml``:

    project:
      name: shop
      provider: local          # or SPRIG_PROVIDER
      environment: local       # or SPRIG_ENVIRONMENT
      env_file: .env           # optional, loaded with python-dotenv

    modules:
      api:
        path: services/api     # defaults to the module name
        build:
          command: make build
          dependencies: [common]
        services:
          api:
            command: ./bin/serve
            deploy: ./bin/deploy
            dependencies: [db]
            env: {PORT: "8080"}
        tests:
          unit:
            command: pytest -q
            dependencies: [db]

Values resolve with priority: argument > environment > file > default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from sprig.core.errors import ConfigurationError
from sprig.core.logging_config import get_logger
from sprig.core.modules import Module, Service, TestSpec
from sprig.core.schema import ModuleFile, parse_project_file
from sprig.core.validation import validate_name

logger = get_logger(__name__)

CONFIG_FILENAME = "sprig.yml"
DEFAULT_PROVIDER = "local"
DEFAULT_ENVIRONMENT = "local"


@dataclass
class ProjectConfig:
    """Loaded and cross-checked project configuration.

    Attributes:
        name: Project name.
        root: Project root directory.
        provider: Provider name used to build/deploy/test.
        environment: Environment name passed to the provider.
        env: Extra environment for every command (from the dotenv file).
        modules: Modules by name.
    """

    name: str
    root: Path
    provider: str = DEFAULT_PROVIDER
    environment: str = DEFAULT_ENVIRONMENT
    env: dict[str, str] = field(default_factory=dict)
    modules: dict[str, Module] = field(default_factory=dict)

    @property
    def services(self) -> dict[str, Service]:
        return {name: s for m in self.modules.values() for name, s in m.services.items()}

    @property
    def state_dir(self) -> Path:
        return self.root / ".sprig"


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from ``start`` looking for a directory with a sprig.yml."""
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return None


def load_project_config(
    root: Path | str,
    provider: str | None = None,
    environment: str | None = None,
) -> ProjectConfig:
    """Load ``sprig.yml`` from ``root``.

    Args:
        root: Project root directory.
        provider: Override the configured provider.
        environment: Override the configured environment.

    Raises:
        ConfigurationError: If the file is missing, malformed, or refers to
            unknown modules/services.
    """
    root = Path(root).resolve()
    path = root / CONFIG_FILENAME
    if not path.exists():
        raise ConfigurationError(f"No {CONFIG_FILENAME} found in {root}", detail={"root": str(root)})

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")

    parsed = parse_project_file(data, str(path))
    project = parsed.project
    name = project.name or root.name
    validate_name(name, "project")

    config = ProjectConfig(
        name=name,
        root=root,
        provider=_resolve(provider, "SPRIG_PROVIDER", project.provider, DEFAULT_PROVIDER),
        environment=_resolve(
            environment, "SPRIG_ENVIRONMENT", project.environment, DEFAULT_ENVIRONMENT
        ),
        env=_load_env_file(root, project.env_file),
    )

    for module_name, module_file in parsed.modules.items():
        config.modules[module_name] = _build_module(root, module_name, module_file)

    _check_references(config)
    logger.debug(
        "project_loaded: name=%s, provider=%s, modules=%s",
        config.name,
        config.provider,
        sorted(config.modules),
    )
    return config


def _resolve(arg: str | None, env_key: str, file_value: Any, default: str) -> str:
    if arg is not None:
        return arg
    env_value = os.environ.get(env_key)
    if env_value:
        return env_value
    if file_value:
        return str(file_value)
    return default


def _load_env_file(root: Path, env_file: str | None) -> dict[str, str]:
    if not env_file:
        return {}
    path = root / env_file
    if not path.exists():
        raise ConfigurationError(f"env_file {path} does not exist")
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


def _build_module(root: Path, name: str, data: ModuleFile) -> Module:
    validate_name(name, "module")
    module = Module(
        name=name,
        path=(root / (data.path or name)).resolve(),
        build_command=data.build.command,
        build_dependencies=list(data.build.dependencies),
        build_timeout=data.build.timeout,
    )

    for service_name, service in data.services.items():
        validate_name(service_name, "service")
        module.services[service_name] = Service(
            name=service_name,
            module=module,
            command=service.command,
            deploy_command=service.deploy,
            dependencies=list(service.dependencies),
            env=dict(service.env),
        )

    for test_name, test in data.tests.items():
        validate_name(test_name, "test")
        module.tests[test_name] = TestSpec(
            name=test_name,
            command=test.command,
            dependencies=list(test.dependencies),
            timeout=test.timeout,
        )

    return module


def _check_references(config: ProjectConfig) -> None:
    services: dict[str, Service] = {}
    for module in config.modules.values():
        for service_name, service in module.services.items():
            if service_name in services:
                raise ConfigurationError(
                    f"Service '{service_name}' is defined by both "
                    f"'{services[service_name].module.name}' and '{module.name}'"
                )
            services[service_name] = service

    for module in config.modules.values():
        for dep in module.build_dependencies:
            if dep not in config.modules:
                raise ConfigurationError(
                    f"Module '{module.name}' has unknown build dependency '{dep}'",
                    detail={"available": sorted(config.modules)},
                )
        for service in module.services.values():
            for dep in service.dependencies:
                if dep not in services:
                    raise ConfigurationError(
                        f"Service '{service.name}' depends on unknown service '{dep}'",
                        detail={"available": sorted(services)},
                    )
        for test in module.tests.values():
            for dep in test.dependencies:
                if dep not in services:
                    raise ConfigurationError(
                        f"Test '{module.name}.{test.name}' depends on unknown service '{dep}'",
                        detail={"available": sorted(services)},
                    )
