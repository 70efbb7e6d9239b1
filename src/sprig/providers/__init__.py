"""Execution environments.

Providers do the actual building, deploying and testing. The task layer
looks them up by the name configured in ``sprig.yml``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sprig.core.errors import ConfigurationError
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
from sprig.providers.local import LocalProvider

if TYPE_CHECKING:
    from sprig.core.config import ProjectConfig

PROVIDERS: dict[str, type[Provider]] = {
    LocalProvider.name: LocalProvider,
}


def get_provider(config: ProjectConfig) -> Provider:
    """Instantiate the provider named in the project config.

    Raises:
        ConfigurationError: If no provider with that name is registered.
    """
    provider_cls = PROVIDERS.get(config.provider)
    if provider_cls is None:
        raise ConfigurationError(
            f"Unknown provider '{config.provider}'",
            detail={"available": sorted(PROVIDERS)},
        )
    return provider_cls(config)


__all__ = [
    "BuildResult",
    "BuildStatus",
    "EnvironmentStatus",
    "LocalProvider",
    "PROVIDERS",
    "Provider",
    "RunResult",
    "RuntimeContext",
    "ServiceStatus",
    "TestResult",
    "get_provider",
]
