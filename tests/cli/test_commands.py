"""Tests for sprig CLI commands."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from sprig.frontends.cli.main import cli
from tests.conftest import write_project


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, project):
    """Invoke the CLI against the test project."""

    def _invoke(*args: str):
        return runner.invoke(cli, ["--root", str(project), *args])

    return _invoke


class TestRoot:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("build", "deploy", "test", "run", "status"):
            assert command in result.output

    def test_no_project(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(cli, ["build"])

        assert result.exit_code == 1
        assert "No sprig.yml found" in result.output

    def test_finds_project_from_subdirectory(self, runner, project, monkeypatch):
        monkeypatch.chdir(project / "api")

        result = runner.invoke(cli, ["build", "common"])

        assert result.exit_code == 0, result.output

    def test_invalid_config(self, runner, tmp_path):
        write_project(tmp_path, {"modules": {"api": {"build": {"dependencies": ["nope"]}}}})

        result = runner.invoke(cli, ["--root", str(tmp_path), "status"])

        assert result.exit_code == 1
        assert "unknown build dependency 'nope'" in result.output
        assert "Available: api" in result.output


class TestBuild:
    """Tests for sprig build."""

    def test_build_all(self, invoke):
        result = invoke("build")

        assert result.exit_code == 0, result.output
        assert "build.api" in result.output
        assert "Done!" in result.output

    def test_build_json(self, invoke):
        result = invoke("--json", "build", "api")

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert set(data) == {"build.api", "build.common"}
        assert data["build.api"]["status"] == "succeeded"
        assert data["build.api"]["output"]["fresh"] is True
        assert "build.common" in data["build.api"]["dependency_results"]

    def test_second_build_is_up_to_date(self, invoke):
        invoke("build")

        result = invoke("--json", "build")

        data = json.loads(result.stdout)
        assert all(entry["output"]["fresh"] is False for entry in data.values())

    def test_unknown_module(self, invoke):
        result = invoke("build", "nope")

        assert result.exit_code == 1
        assert "Unknown module(s): nope" in result.output
        assert "Available: api, common, db" in result.output

    def test_failed_build(self, tmp_path, runner, project_data):
        project_data["modules"]["common"]["build"]["command"] = "echo missing header; exit 2"
        write_project(tmp_path, project_data)

        result = runner.invoke(cli, ["--root", str(tmp_path), "build"])

        assert result.exit_code == 1
        assert "missing header" in result.output
        assert "because build.common." in result.output
        assert "2 task(s) failed" in result.output


class TestDeployAndTest:
    def test_deploy_then_status(self, invoke):
        result = invoke("deploy", "api")
        assert result.exit_code == 0, result.output

        status = invoke("--json", "status")

        data = json.loads(status.stdout)
        assert data["configured"] is True
        assert data["services"]["api"]["state"] == "ready"
        assert data["services"]["db"]["state"] == "ready"

    def test_status_text(self, invoke):
        result = invoke("status")

        assert result.exit_code == 0, result.output
        assert "shop" in result.output
        assert "missing" in result.output

    def test_run_all_tests(self, invoke):
        result = invoke("--json", "test")

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["test.api.unit"]["output"]["success"] is True
        assert data["test.api.integ"]["output"]["success"] is True

    def test_test_by_name(self, invoke):
        result = invoke("--json", "test", "api", "--name", "unit")

        data = json.loads(result.stdout)
        assert "test.api.unit" in data
        assert "test.api.integ" not in data

    def test_failing_test(self, tmp_path, runner, project_data):
        project_data["modules"]["api"]["tests"]["unit"]["command"] = "echo expected 2 got 3; exit 1"
        write_project(tmp_path, project_data)

        result = runner.invoke(cli, ["--root", str(tmp_path), "test", "--name", "unit"])

        assert result.exit_code == 1
        assert "TestFailedError" in result.output
        assert "expected 2 got 3" in result.output


class TestRun:
    def test_run_service(self, invoke, config):
        result = invoke("run", "service", "api")

        assert result.exit_code == 0, result.output
        assert f"api sees db {config.modules['db'].version}" in result.output

    def test_run_service_exit_code(self, tmp_path, runner, project_data):
        project_data["modules"]["db"]["services"]["db"]["command"] = "exit 5"
        write_project(tmp_path, project_data)

        result = runner.invoke(cli, ["--root", str(tmp_path), "run", "service", "db"])

        assert result.exit_code == 5

    def test_run_test(self, invoke):
        result = invoke("--json", "run", "test", "api", "integ")

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["result"]["success"] is True
        assert data["result"]["output"] == "integ ok\n"
        assert "deploy.api" in data["tasks"]

    def test_run_unknown_test(self, invoke):
        result = invoke("run", "test", "api", "e2e")

        assert result.exit_code == 1
        assert 'Could not find test "e2e"' in result.output
        assert "Available: integ, unit" in result.output
