"""Pytest configuration and fixtures."""

import copy
import logging
from pathlib import Path

import pytest
import yaml

from sprig.core import logging_config
from sprig.core.config import load_project_config
from sprig.core.context import OrchestrationContext

# A small project: api builds on common and is deployed next to db
PROJECT = {
    "project": {"name": "shop"},
    "modules": {
        "common": {
            "build": {"command": "echo built common"},
        },
        "db": {
            "services": {
                "db": {"command": "echo db running", "deploy": "echo deploying db"},
            },
        },
        "api": {
            "build": {"command": "echo built api", "dependencies": ["common"]},
            "services": {
                "api": {
                    "command": 'echo "api sees db $SPRIG_SERVICE_DB_VERSION"',
                    "deploy": "echo deploying api",
                    "dependencies": ["db"],
                    "env": {"PORT": "8080"},
                },
            },
            "tests": {
                "unit": {"command": "echo unit ok"},
                "integ": {
                    "command": 'test -n "$SPRIG_SERVICE_API_VERSION" && echo integ ok',
                    "dependencies": ["api"],
                },
            },
        },
    },
}


def write_project(root: Path, data: dict | None = None) -> Path:
    """Write a sprig.yml and a source file per module under ``root``."""
    data = copy.deepcopy(PROJECT if data is None else data)
    for name, module in (data.get("modules") or {}).items():
        path = root / (module or {}).get("path", name)
        path.mkdir(parents=True, exist_ok=True)
        (path / "main.txt").write_text(f"{name}\n")
    (root / "sprig.yml").write_text(yaml.safe_dump(data, sort_keys=False))
    return root


@pytest.fixture
def project_data():
    """Mutable copy of the default project, for tests that tweak it."""
    return copy.deepcopy(PROJECT)


@pytest.fixture
def project(tmp_path):
    """Project root with the default sprig.yml."""
    return write_project(tmp_path)


@pytest.fixture
def config(project):
    return load_project_config(project)


@pytest.fixture
def ctx(config):
    return OrchestrationContext(config)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's SPRIG_* settings out of tests."""
    for name in ("SPRIG_PROVIDER", "SPRIG_ENVIRONMENT", "SPRIG_LOG_LEVEL", "SPRIG_LOG_FORMAT", "SPRIG_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() calls made by a test."""
    logger = logging.getLogger("sprig")
    saved = (logger.level, list(logger.handlers), logger.propagate, logging_config._configured)
    yield logger
    for handler in logger.handlers:
        if handler not in saved[1]:
            handler.close()
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]
    logging_config._configured = saved[3]
