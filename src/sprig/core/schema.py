"""Pydantic models for sprig.yml.

These models check the shape of the file only: types, required fields and
unknown keys. Names and cross-references between modules, services and
tests are checked by the config loader once the file parses.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from sprig.core.errors import ConfigurationError

DEFAULT_TIMEOUT = 600.0


def _empty_if_none(v: Any) -> Any:
    return {} if v is None else v


def _mapping_values(v: Any) -> Any:
    """Turn ``name:`` entries with no body into empty mappings."""
    if isinstance(v, dict):
        return {k: _empty_if_none(value) for k, value in v.items()}
    return _empty_if_none(v)


class BuildFile(BaseModel):
    """``modules.<name>.build``"""

    model_config = ConfigDict(extra="forbid")

    command: str | None = None
    dependencies: list[str] = []
    timeout: float = DEFAULT_TIMEOUT

    @field_validator("dependencies", mode="before")
    @classmethod
    def validate_dependencies(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


class ServiceFile(BaseModel):
    """``modules.<name>.services.<service>``"""

    model_config = ConfigDict(extra="forbid")

    command: str | None = None
    deploy: str | None = None
    dependencies: list[str] = []
    env: dict[str, str] = {}

    @field_validator("dependencies", mode="before")
    @classmethod
    def validate_dependencies(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: Any) -> Any:
        """YAML reads ``PORT: 8080`` as an int; the environment wants strings."""
        if isinstance(v, dict):
            return {str(k): "" if value is None else str(value) for k, value in v.items()}
        return _empty_if_none(v)


class TestFile(BaseModel):
    """``modules.<name>.tests.<test>``"""

    model_config = ConfigDict(extra="forbid")

    command: str
    dependencies: list[str] = []
    timeout: float = DEFAULT_TIMEOUT

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("test command cannot be empty")
        return v

    @field_validator("dependencies", mode="before")
    @classmethod
    def validate_dependencies(cls, v: Any) -> Any:
        return [] if v is None else v


class ModuleFile(BaseModel):
    """``modules.<name>``"""

    model_config = ConfigDict(extra="forbid")

    path: str | None = None
    build: BuildFile = BuildFile()
    services: dict[str, ServiceFile] = {}
    tests: dict[str, TestFile] = {}

    @field_validator("build", mode="before")
    @classmethod
    def validate_build(cls, v: Any) -> Any:
        return _empty_if_none(v)

    @field_validator("services", "tests", mode="before")
    @classmethod
    def validate_entries(cls, v: Any) -> Any:
        return _mapping_values(v)


class ProjectSection(BaseModel):
    """``project``"""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    provider: str | None = None
    environment: str | None = None
    env_file: str | None = None


class ProjectFile(BaseModel):
    """The whole sprig.yml."""

    model_config = ConfigDict(extra="forbid")

    project: ProjectSection = ProjectSection()
    modules: dict[str, ModuleFile] = {}

    @field_validator("project", mode="before")
    @classmethod
    def validate_project(cls, v: Any) -> Any:
        return _empty_if_none(v)

    @field_validator("modules", mode="before")
    @classmethod
    def validate_modules(cls, v: Any) -> Any:
        return _mapping_values(v)


def parse_project_file(data: dict[str, Any], where: str) -> ProjectFile:
    """Validate raw YAML data against the sprig.yml schema.

    Args:
        data: Mapping loaded from the file.
        where: File path, for error messages.

    Raises:
        ConfigurationError: With one line per schema problem, located by
            dotted path (``modules.api.build.dependencies: ...``).
    """
    try:
        return ProjectFile.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid {where}:\n  " + "\n  ".join(errors),
            detail={"errors": errors},
        ) from e
