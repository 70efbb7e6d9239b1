"""Modules, services and tests as the task layer sees them."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Directories that never affect a module's version
IGNORED_DIRS = frozenset({".git", ".hg", ".sprig", "__pycache__", "node_modules", ".venv"})

VERSION_PREFIX = "v-"


@dataclass
class TestSpec:
    """A test command defined by a module.

    Attributes:
        name: Test name, unique within the module.
        command: Shell command; exit code 0 means the test passed.
        dependencies: Services that must be deployed first.
        timeout: Seconds before the command is killed.
    """

    __test__ = False  # keep pytest from collecting this class

    name: str
    command: str
    dependencies: list[str] = field(default_factory=list)
    timeout: float = 600.0


@dataclass(eq=False)
class Service:
    """A long-running service defined by a module.

    Attributes:
        name: Service name, unique within the project.
        module: Module that builds this service.
        command: Command that runs the service.
        deploy_command: Command that deploys it, if the provider needs one.
        dependencies: Services that must be deployed first.
        env: Extra environment for the service's commands.
    """

    name: str
    module: Module
    command: str | None = None
    deploy_command: str | None = None
    dependencies: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Service(name={self.name!r}, module={self.module.name!r})"


@dataclass(eq=False)
class Module:
    """A buildable unit of the project.

    The version is a content hash of the module's files and its config, so
    any change to either produces new task keys.
    """

    name: str
    path: Path
    build_command: str | None = None
    build_dependencies: list[str] = field(default_factory=list)
    build_timeout: float = 600.0
    services: dict[str, Service] = field(default_factory=dict)
    tests: dict[str, TestSpec] = field(default_factory=dict)
    _version: str | None = field(default=None, init=False, repr=False)

    @property
    def version(self) -> str:
        if self._version is None:
            self._version = compute_version(self.path, self.describe())
        return self._version

    def refresh_version(self) -> str:
        """Recompute the version after files changed on disk."""
        self._version = None
        return self.version

    def describe(self) -> dict[str, Any]:
        """Config-derived fields that feed into the version."""
        return {
            "name": self.name,
            "build": {
                "command": self.build_command,
                "dependencies": sorted(self.build_dependencies),
            },
            "services": {
                name: {
                    "command": s.command,
                    "deploy": s.deploy_command,
                    "dependencies": sorted(s.dependencies),
                    "env": s.env,
                }
                for name, s in sorted(self.services.items())
            },
            "tests": {
                name: {"command": t.command, "dependencies": sorted(t.dependencies)}
                for name, t in sorted(self.tests.items())
            },
        }

    def __repr__(self) -> str:
        return f"Module(name={self.name!r}, path={str(self.path)!r})"


def compute_version(path: Path, config: dict[str, Any]) -> str:
    """Hash a module directory together with its config.

    Files are visited in sorted order and hashed with their relative path,
    so renames change the version too.
    """
    digest = hashlib.sha256()
    digest.update(json.dumps(config, sort_keys=True, separators=(",", ":")).encode("utf-8"))

    if path.is_dir():
        for file_path in sorted(_iter_files(path)):
            digest.update(file_path.relative_to(path).as_posix().encode("utf-8"))
            digest.update(b"\0")
            digest.update(file_path.read_bytes())

    return VERSION_PREFIX + digest.hexdigest()[:10]


def _iter_files(root: Path) -> list[Path]:
    files: list[Path] = []
    for child in root.iterdir():
        if child.is_dir():
            if child.name not in IGNORED_DIRS:
                files.extend(_iter_files(child))
        elif child.is_file():
            files.append(child)
    return files
